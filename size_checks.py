import numpy as np


def _n_rows_cols(data):
    shape = np.shape(data)
    if len(shape) == 1:
        return 1, shape[0]
    return shape[0], shape[1]


def check_same_sizes(data, labels, caller_description, add_info="labels"):
    """
    Check that data points and labels have the same size.

    Parameters:
    data (array-like): Data matrix with one point per column.
    labels (array-like or int): Labels (one per column), or the expected
        number of points directly.
    caller_description (str): Prefix used in the error message.
    add_info (str): Name used for the labels in the error message.

    Raises:
    ValueError: If the number of points differs from the number of labels.
    """
    n_points = _n_rows_cols(data)[1]
    if isinstance(labels, (int, np.integer)):
        n_labels = int(labels)
    else:
        n_labels = _n_rows_cols(labels)[1]

    if n_points != n_labels:
        raise ValueError(
            f"{caller_description}: number of points ({n_points}) does not "
            f"match number of {add_info} ({n_labels})!"
        )


def check_same_dimensionality(data, dimension, caller_description, add_info="dataset"):
    """
    Check that the dimensionality (rows) of data matches the model's.

    Parameters:
    data (array-like): Data matrix with one point per column.
    dimension (int or array-like): Expected dimensionality, or another
        matrix whose row count is used.
    caller_description (str): Prefix used in the error message.
    add_info (str): Name used for the data in the error message.

    Raises:
    ValueError: If the dimensionalities differ.
    """
    n_rows = _n_rows_cols(data)[0]
    if isinstance(dimension, (int, np.integer)):
        expected = int(dimension)
    else:
        expected = _n_rows_cols(dimension)[0]

    if n_rows != expected:
        raise ValueError(
            f"{caller_description}: dimensionality of {add_info} ({n_rows}) "
            f"is not equal to the dimensionality of the model ({expected})!"
        )

import struct

import numpy as np


#######################################################################
#                             Assertions                              #
#######################################################################


def is_stochastic(X):
    """True if `X` contains probabilities that sum to 1 along the last axis"""
    msg = "Array should be stochastic along the last axis"
    assert len(X[X < 0]) == len(X[X > 1]) == 0, msg
    assert np.allclose(np.sum(X, axis=-1), 1), msg
    return True


#######################################################################
#                           Data Generators                           #
#######################################################################


def random_tensor(shape, rng, standardize=False):
    """
    Create a random real-valued tensor of shape `shape`. If `standardize` is
    True, ensure the tensor has mean 0 and std 1.
    """
    X = rng.standard_normal(shape)

    if standardize:
        eps = np.finfo(float).eps
        X = (X - X.mean()) / (X.std() + eps)
    return X


def idx_bytes(dims, payload, magic=0, type_code=0x08):
    """
    Encode an unsigned-byte IDX file with dimensions `dims` and raw
    `payload`. `magic` and `type_code` can be overridden to produce malformed
    headers.
    """
    header = struct.pack(">HBB", magic, type_code, len(dims))
    header += struct.pack(">{}I".format(len(dims)), *dims)
    return header + np.asarray(list(payload), dtype=np.uint8).tobytes()

# flake8: noqa
import numpy as np
from numpy.testing import assert_almost_equal

from simplenn.utils import (
    col2im,
    conv2D,
    conv2D_naive,
    conv_fits,
    calc_conv_out_dims,
    approx_normal,
    get_rng,
    im2col,
    pad2D,
)
from simplenn.utils.testing import random_tensor


def test_get_rng():
    rng = np.random.default_rng(0)
    assert get_rng(rng) is rng

    a = get_rng(42).random(5)
    b = get_rng(42).random(5)
    assert_almost_equal(a, b)
    print("PASSED")


def test_approx_normal():
    X = approx_normal((200, 250), std=1.0, rng=get_rng(0))
    assert X.shape == (200, 250)
    assert abs(X.mean()) < 0.02
    assert abs(X.std() - 1.0) < 0.02
    assert np.abs(X).max() < 2 * 1.724

    Y = approx_normal((3, 4), std=0.1, rng=get_rng(1))
    Z = approx_normal((3, 4), std=0.1, rng=get_rng(1))
    assert_almost_equal(Y, Z)
    print("PASSED")


def test_pad2D():
    X = np.ones((2, 3, 4))
    X_pad = pad2D(X, 1)
    assert X_pad.shape == (2, 5, 6)
    assert X_pad.sum() == X.sum()
    assert_almost_equal(X_pad[:, 1:-1, 1:-1], X)
    print("PASSED")


def test_conv_out_dims():
    assert calc_conv_out_dims((28, 28), 3, stride=2, pad=1) == (14, 14)
    assert calc_conv_out_dims((14, 14), 3, stride=2, pad=1) == (7, 7)
    assert calc_conv_out_dims((5, 7), 3) == (3, 5)

    assert conv_fits(28, 14, 3, 2, 1)
    assert conv_fits(14, 7, 3, 2, 1)
    assert not conv_fits(28, 15, 3, 2, 1)
    assert not conv_fits(5, 4, 3, 1, 0)
    print("PASSED")


def test_conv(N=15):
    rng = np.random.default_rng(12345)

    N = np.inf if N is None else N

    i = 0
    while i < N:
        in_ch = rng.integers(1, 4)
        out_ch = rng.integers(1, 4)
        in_rows = rng.integers(3, 10)
        in_cols = rng.integers(3, 10)
        k = int(rng.choice([1, 3, 5]))
        pad = int(rng.integers(0, 3))
        stride = int(rng.integers(1, 3))
        if k > min(in_rows, in_cols) + 2 * pad:
            continue

        out_dims = calc_conv_out_dims((in_rows, in_cols), k, stride, pad)
        X = random_tensor((in_ch, in_rows, in_cols), rng)
        W = random_tensor((out_ch, in_ch, k, k), rng)

        assert_almost_equal(conv2D(X, W, stride, pad, out_dims), conv2D_naive(X, W, stride, pad, out_dims))
        print("PASSED")
        i += 1


def test_col2im_is_adjoint_of_im2col(N=10):
    rng = np.random.default_rng(12345)

    N = np.inf if N is None else N

    i = 0
    while i < N:
        in_ch = rng.integers(1, 4)
        in_rows = rng.integers(3, 9)
        in_cols = rng.integers(3, 9)
        k, pad, stride = 3, int(rng.integers(0, 2)), int(rng.integers(1, 3))
        out_dims = calc_conv_out_dims((in_rows, in_cols), k, stride, pad)

        X = random_tensor((in_ch, in_rows, in_cols), rng)
        X_col = im2col(X, k, pad, stride, out_dims)
        C = random_tensor(X_col.shape, rng)

        # <im2col(X), C> == <X, col2im(C)>
        lhs = np.sum(X_col * C)
        rhs = np.sum(X * col2im(C, X.shape, k, pad, stride, out_dims))
        assert_almost_equal(lhs, rhs)
        print("PASSED")
        i += 1

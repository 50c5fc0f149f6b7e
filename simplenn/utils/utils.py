import numpy as np

#######################################################################
#                           Random Numbers                            #
#######################################################################


def get_rng(seed=None):
    """
    Return a random number generator.

    Parameters
    ----------
    seed : int, :py:class:`Generator <numpy.random.Generator>`, or None
        If an int (or None), seed a fresh generator with it. If already a
        generator, return it unchanged so that callers can share one stream.
        Default is None.

    Returns
    -------
    rng : :py:class:`Generator <numpy.random.Generator>`
        The random number generator.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def approx_normal(shape, std=1.0, rng=None):
    """
    Draw approximately normal samples by summing four uniform variates.

    Notes
    -----
    Each sample is computed as

    .. math::

        x = \\text{std} \\cdot 1.724 (u_1 + u_2 + u_3 + u_4 - 2)

    where :math:`u_i \\sim \\text{Uniform}(0, 1)`. The result has mean 0 and
    a standard deviation of roughly `std`, with tails bounded at
    :math:`\\pm 3.448 \\, \\text{std}`.

    Draws are taken four at a time per sample, in row-major order over
    `shape`, so two generators with the same seed produce the same weights.

    Parameters
    ----------
    shape : tuple
        The shape of the output array.
    std : float
        Scale applied to the unit-variance draws. Default is 1.
    rng : :py:class:`Generator <numpy.random.Generator>` or None
        The generator to draw from. If None, use a freshly seeded generator.
        Default is None.

    Returns
    -------
    X : :py:class:`ndarray <numpy.ndarray>` of shape `shape`
        The samples.
    """
    rng = get_rng(rng)
    U = rng.random(tuple(shape) + (4,))
    return std * (U.sum(axis=-1) - 2.0) * 1.724


#######################################################################
#                            Padding Utils                            #
#######################################################################


def pad2D(X, pad):
    """
    Zero-pad a 3D input volume `X` along its last two dimensions.

    Parameters
    ----------
    X : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch, in_rows, in_cols)`
        Input volume. Padding is applied to `in_rows` and `in_cols`.
    pad : int
        The number of rows/columns of zeros to add on every side.

    Returns
    -------
    X_pad : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch, in_rows + 2 * pad, in_cols + 2 * pad)`
        The padded output volume.
    """  # noqa: E501
    return np.pad(
        X, pad_width=((0, 0), (pad, pad), (pad, pad)), mode="constant", constant_values=0
    )


def calc_conv_out_dims(in_dims, kernel_size, stride=1, pad=0):
    """
    Compute the largest output (rows, cols) a strided, padded correlation can
    produce for an input of spatial size `in_dims`.

    Parameters
    ----------
    in_dims : 2-tuple
        The input dimensions `(in_rows, in_cols)`.
    kernel_size : int
        The side length of the square kernel.
    stride : int
        The stride of the kernel. Default is 1.
    pad : int
        The zero-padding on each side. Default is 0.

    Returns
    -------
    out_dims : 2-tuple
        The output dimensions `(out_rows, out_cols)`.
    """
    return tuple((n + 2 * pad - kernel_size) // stride + 1 for n in in_dims)


def conv_fits(in_size, out_size, kernel_size, stride, pad):
    """
    True if an output axis of length `out_size` can be computed from an input
    axis of length `in_size` without reading past the padded border.
    """
    return (out_size - 1) * stride + kernel_size <= in_size + 2 * pad


#######################################################################
#                   Convolution Vectorization Utils                   #
#######################################################################


def _im2col_indices(in_ch, kernel_size, out_dims, stride):
    """
    Helper function that computes indices into the padded input volume in
    prep for columnization in :func:`im2col`.

    Row `q` of the column matrix corresponds to kernel entry
    ``(z0, dy, dx) = unravel(q, (in_ch, kernel_size, kernel_size))``, column
    `r` to output position ``(y1, x1) = unravel(r, out_dims)``.
    """
    k, s = kernel_size, stride
    out_rows, out_cols = out_dims

    # i0/j0 : row/col offsets inside the kernel window
    # i1/j1 : top-left corner of each window in the padded input
    i0 = np.tile(np.repeat(np.arange(k), k), in_ch)
    j0 = np.tile(np.arange(k), k * in_ch)
    i1 = s * np.repeat(np.arange(out_rows), out_cols)
    j1 = s * np.tile(np.arange(out_cols), out_rows)

    i = i0.reshape(-1, 1) + i1.reshape(1, -1)
    j = j0.reshape(-1, 1) + j1.reshape(1, -1)
    c = np.repeat(np.arange(in_ch), k * k).reshape(-1, 1)
    return c, i, j


def im2col(X, kernel_size, pad, stride, out_dims):
    """
    Pad and rearrange the receptive fields of the input volume into column
    vectors.

    Notes
    -----
    Code extended from Andrej Karpathy's ``im2col.py``. Positions that fall
    in the zero padding contribute 0 to every product, which is equivalent
    to skipping them.

    Parameters
    ----------
    X : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch, in_rows, in_cols)`
        Input volume (not padded).
    kernel_size : int
        The side length of the square kernel.
    pad : int
        The zero-padding on each side.
    stride : int
        The stride of the kernel.
    out_dims : 2-tuple
        The output dimensions `(out_rows, out_cols)`.

    Returns
    -------
    X_col : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch * kernel_size**2, out_rows * out_cols)`
        The columnized input volume.
    """  # noqa: E501
    X_pad = pad2D(X, pad)
    c, i, j = _im2col_indices(X.shape[0], kernel_size, out_dims, stride)
    return X_pad[c, i, j]


def col2im(X_col, X_shape, kernel_size, pad, stride, out_dims):
    """
    Take the columns of `X_col` and sum them back into the windows of a 3D
    volume, discarding the padding.

    Parameters
    ----------
    X_col : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch * kernel_size**2, out_rows * out_cols)`
        The columnized volume.
    X_shape : 3-tuple
        The original dimensions `(in_ch, in_rows, in_cols)` of the volume
        (not including padding).
    kernel_size : int
        The side length of the square kernel.
    pad : int
        The zero-padding on each side.
    stride : int
        The stride of the kernel.
    out_dims : 2-tuple
        The output dimensions `(out_rows, out_cols)`.

    Returns
    -------
    img : :py:class:`ndarray <numpy.ndarray>` of shape `X_shape`
        The summed volume.
    """  # noqa: E501
    in_ch, in_rows, in_cols = X_shape
    X_pad = np.zeros((in_ch, in_rows + 2 * pad, in_cols + 2 * pad))
    c, i, j = _im2col_indices(in_ch, kernel_size, out_dims, stride)

    np.add.at(X_pad, (c, i, j), X_col)
    return X_pad[:, pad : pad + in_rows, pad : pad + in_cols]


#######################################################################
#                             Convolution                             #
#######################################################################


def conv2D(X, W, stride, pad, out_dims):
    """
    Cross-correlate input `X` with a collection of kernels `W` via a single
    matrix multiplication.

    Parameters
    ----------
    X : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch, in_rows, in_cols)`
        Input volume.
    W : :py:class:`ndarray <numpy.ndarray>` of shape `(out_ch, in_ch, kernel_size, kernel_size)`
        The volume of kernels.
    stride : int
        The stride of each kernel.
    pad : int
        The zero-padding on each side.
    out_dims : 2-tuple
        The output dimensions `(out_rows, out_cols)`.

    Returns
    -------
    Z : :py:class:`ndarray <numpy.ndarray>` of shape `(out_ch, out_rows, out_cols)`
        The correlation of `X` with `W`.
    """  # noqa: E501
    out_ch, in_ch, k, _ = W.shape
    X_col = im2col(X, k, pad, stride, out_dims)
    Z = W.reshape(out_ch, -1) @ X_col
    return Z.reshape((out_ch,) + tuple(out_dims))


def conv2D_naive(X, W, stride, pad, out_dims):
    """
    A slow but straightforward implementation of the 2D correlation of `X`
    with `W`.

    Notes
    -----
    Uses explicit loops and skips every source coordinate that falls outside
    the input instead of materializing the padding. Used to cross-check
    :func:`conv2D`.

    Parameters
    ----------
    X : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch, in_rows, in_cols)`
        Input volume.
    W : :py:class:`ndarray <numpy.ndarray>` of shape `(out_ch, in_ch, kernel_size, kernel_size)`
        The volume of kernels.
    stride : int
        The stride of each kernel.
    pad : int
        The zero-padding on each side.
    out_dims : 2-tuple
        The output dimensions `(out_rows, out_cols)`.

    Returns
    -------
    Z : :py:class:`ndarray <numpy.ndarray>` of shape `(out_ch, out_rows, out_cols)`
        The correlation of `X` with `W`.
    """  # noqa: E501
    out_ch, in_ch, k, _ = W.shape
    _, in_rows, in_cols = X.shape
    out_rows, out_cols = out_dims

    Z = np.zeros((out_ch, out_rows, out_cols))
    for z1 in range(out_ch):
        for y1 in range(out_rows):
            y0 = stride * y1 - pad
            for x1 in range(out_cols):
                x0 = stride * x1 - pad
                v = 0.0
                for z0 in range(in_ch):
                    for dy in range(k):
                        y = y0 + dy
                        if not 0 <= y < in_rows:
                            continue
                        for dx in range(k):
                            x = x0 + dx
                            if 0 <= x < in_cols:
                                v += X[z0, y, x] * W[z1, z0, dy, dx]
                Z[z1, y1, x1] = v
    return Z

"""A reader for the IDX binary format used by the MNIST dataset"""
import io
import gzip
import struct
import operator
import warnings
from functools import reduce

import numpy as np

IDX_MAGIC = 0
IDX_UBYTE = 0x08

_CHUNK_SIZE = 1 << 20


class IdxFormatError(ValueError):
    """Raised when a byte stream is not a well-formed unsigned-byte IDX file"""


class IdxFile(object):
    def __init__(self, dims, data):
        """
        An in-memory IDX file.

        Notes
        -----
        An IDX file is a 4-byte header (two reserved zero bytes, a type byte,
        and the number of dimensions), followed by one big-endian uint32 per
        dimension, followed by the ``prod(dims)`` data values in row-major
        order. Only the unsigned-byte type (``0x08``) is supported.

        Parameters
        ----------
        dims : tuple of int
            The dimension sizes. The first dimension indexes records.
        data : :py:class:`ndarray <numpy.ndarray>` of dtype uint8
            The flat payload, of length ``prod(dims)``.
        """
        self.dims = tuple(int(d) for d in dims)
        self.data = np.asarray(data, dtype=np.uint8).ravel()

        if not self.dims:
            raise IdxFormatError("IDX file must have at least one dimension")
        nbytes = _n_values(self.dims)
        if self.data.size != nbytes:
            fstr = "Expected {} data bytes for dims {}, but got {}"
            raise IdxFormatError(fstr.format(nbytes, self.dims, self.data.size))

    def __len__(self):
        return self.dims[0]

    def __repr__(self):
        return "IdxFile(dims={})".format(self.dims)

    @property
    def ndims(self):
        return len(self.dims)

    @classmethod
    def read(cls, fp):
        """
        Parse an IDX file from the binary file object `fp`.

        Raises
        ------
        IdxFormatError
            If the header is malformed or the stream ends before the payload
            is complete.
        """
        header = fp.read(4)
        if len(header) != 4:
            raise IdxFormatError("Truncated IDX header")

        magic, type_code, ndims = struct.unpack(">HBB", header)
        if magic != IDX_MAGIC:
            raise IdxFormatError("Bad IDX magic: {:#06x}".format(magic))
        if type_code != IDX_UBYTE:
            raise IdxFormatError("Unsupported IDX type: {:#04x}".format(type_code))
        if ndims < 1:
            raise IdxFormatError("IDX file must have at least one dimension")

        buf = fp.read(4 * ndims)
        if len(buf) != 4 * ndims:
            raise IdxFormatError("Truncated IDX dimensions")
        dims = struct.unpack(">{}I".format(ndims), buf)

        nbytes = _n_values(dims)
        payload = _read_upto(fp, nbytes)
        if len(payload) != nbytes:
            fstr = "Truncated IDX payload: expected {} bytes, got {}"
            raise IdxFormatError(fstr.format(nbytes, len(payload)))
        return cls(dims, np.frombuffer(payload, dtype=np.uint8))

    @classmethod
    def from_bytes(cls, buf):
        """Parse an IDX file held in the bytes object `buf`."""
        return cls.read(io.BytesIO(buf))

    def get1(self, i):
        """
        Return record `i` of a 1-dimensional file (e.g., a label file) as an
        int.
        """
        if self.ndims != 1:
            raise ValueError("get1 requires a 1-D IDX file, got dims {}".format(self.dims))
        self._check_index(i)
        return int(self.data[i])

    def get3(self, i):
        """
        Return record `i` of a 3-dimensional file (e.g., an image file) as a
        flat uint8 array of length ``dims[1] * dims[2]``.
        """
        if self.ndims != 3:
            raise ValueError("get3 requires a 3-D IDX file, got dims {}".format(self.dims))
        self._check_index(i)
        n = self.dims[1] * self.dims[2]
        return self.data[i * n : (i + 1) * n].copy()

    def _check_index(self, i):
        if not 0 <= i < self.dims[0]:
            fstr = "Record {} out of range for {} records"
            raise IndexError(fstr.format(i, self.dims[0]))


def _n_values(dims):
    """The number of data values for `dims`, as an unbounded Python int"""
    return reduce(operator.mul, (int(d) for d in dims), 1)


def _read_upto(fp, nbytes):
    """Read at most `nbytes` from `fp`, stopping early at end of file"""
    chunks, remaining = [], nbytes
    while remaining > 0:
        chunk = fp.read(min(remaining, _CHUNK_SIZE))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def load_idx(path):
    """
    Load an IDX file from `path`, transparently decompressing ``.gz`` files.

    Parameters
    ----------
    path : str
        The path to the IDX file.

    Returns
    -------
    idx : :class:`IdxFile` instance or None
        The parsed file, or None if it could not be opened or parsed. A
        warning describing the failure is issued in the latter case.
    """
    opener = gzip.open if str(path).endswith(".gz") else open
    try:
        with opener(path, "rb") as fp:
            return IdxFile.read(fp)
    except (OSError, IdxFormatError) as e:
        warnings.warn("Could not load IDX file {}: {}".format(path, e))
        return None

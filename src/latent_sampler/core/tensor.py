"""Owned tensor buffers exchanged with the predictor and decoder.

A ``Tensor`` is a shape, a dtype tag and a flat numpy buffer. Half floats
are stored as ``uint16`` bit patterns, which is how inference engines expect
float16 input to arrive.
"""

from enum import Enum
from typing import Sequence, Tuple, Union

import numpy as np

from ..errors import ShapeMismatch, UnsupportedDType
from .halfprec import decode_array


class DType(Enum):
    """Element types accepted by the tensor builders."""
    UINT8 = "uint8"
    INT8 = "int8"
    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    FLOAT16 = "float16"
    FLOAT32 = "float32"
    UINT64 = "uint64"
    INT64 = "int64"

    @classmethod
    def from_name(cls, name: Union[str, "DType"]) -> "DType":
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            raise UnsupportedDType(f"Input tensor type {name} is unknown") from None

    @property
    def storage(self) -> np.dtype:
        """numpy dtype of the backing buffer."""
        if self is DType.FLOAT16:
            return np.dtype(np.uint16)
        return np.dtype(self.value)


def _element_count(shape: Sequence[int]) -> int:
    size = 1
    for dim in shape:
        if dim < 0:
            raise ValueError(f"Negative dimension in shape {tuple(shape)}")
        size *= dim
    return size


class Tensor:
    """Shaped, typed buffer. Slices and reshapes share memory."""

    def __init__(self, dtype: Union[str, DType], shape: Sequence[int], data: np.ndarray):
        self.dtype = DType.from_name(dtype)
        self.shape: Tuple[int, ...] = tuple(int(d) for d in shape)
        data = np.asarray(data)
        if data.dtype != self.dtype.storage:
            raise UnsupportedDType(
                f"Buffer of {data.dtype} cannot back a {self.dtype.value} tensor"
            )
        if data.size != _element_count(self.shape):
            raise ShapeMismatch(
                f"Buffer holds {data.size} elements, shape {self.shape} needs "
                f"{_element_count(self.shape)}"
            )
        self.data = np.ascontiguousarray(data).reshape(-1)

    @property
    def size(self) -> int:
        return self.data.size

    @property
    def batch(self) -> int:
        return self.shape[0]

    def __repr__(self) -> str:
        return f"Tensor(dtype={self.dtype.value}, shape={self.shape})"

    def array(self) -> np.ndarray:
        """Shaped view of the buffer."""
        return self.data.reshape(self.shape)

    def copy(self) -> "Tensor":
        return Tensor(self.dtype, self.shape, self.data.copy())

    def reshape(self, shape: Sequence[int]) -> "Tensor":
        """View the same buffer under another shape."""
        return Tensor(self.dtype, shape, self.data)

    def batch_slice(self, start: int, stop: int) -> "Tensor":
        """View of batch rows ``[start, stop)``."""
        if not 0 <= start < stop <= self.batch:
            raise ShapeMismatch(f"Batch slice [{start}, {stop}) outside batch of {self.batch}")
        rows = self.data.reshape(self.batch, -1)[start:stop]
        return Tensor(self.dtype, (stop - start,) + self.shape[1:], rows.reshape(-1))

    def float_values(self) -> np.ndarray:
        """Element values as float32, decoding half floats."""
        if self.dtype is DType.FLOAT16:
            return decode_array(self.data)
        return self.data.astype(np.float32)

    def same_shape(self, other: "Tensor") -> bool:
        return self.shape == other.shape


def fill_value(dtype: Union[str, DType], shape: Sequence[int], value) -> Tensor:
    """Tensor with every element set to ``value``.

    For float16, ``value`` is the raw bit pattern.
    """
    dtype = DType.from_name(dtype)
    return Tensor(dtype, shape, np.full(_element_count(shape), value, dtype=dtype.storage))


def from_values(dtype: Union[str, DType], shape: Sequence[int], values) -> Tensor:
    """Tensor built by numeric conversion of ``values``.

    For float16, ``values`` are raw bit patterns.
    """
    dtype = DType.from_name(dtype)
    return Tensor(dtype, shape, np.array(values, dtype=dtype.storage).reshape(-1))


def from_bytes(dtype: Union[str, DType], shape: Sequence[int], buffer) -> Tensor:
    """Tensor reinterpreting the raw bytes of ``buffer`` (no value conversion)."""
    dtype = DType.from_name(dtype)
    if isinstance(buffer, np.ndarray):
        buffer = np.ascontiguousarray(buffer).tobytes()
    raw = bytes(buffer)
    if len(raw) % dtype.storage.itemsize:
        raise ShapeMismatch(
            f"{len(raw)} bytes is not a whole number of {dtype.value} elements"
        )
    return Tensor(dtype, shape, np.frombuffer(raw, dtype=dtype.storage).copy())

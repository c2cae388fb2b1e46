"""
Spectral Input Errors
=====================

Precondition violations of the spectral scorer. These are reported
immediately and never retried.
"""


class SpectralInputError(ValueError):
    """Base class for malformed spectral scorer input."""
    pass


class InvalidFrameError(SpectralInputError):
    """Raised when frame dimensions are not positive or do not match the data."""
    pass


class FrameTooLargeError(SpectralInputError):
    """Raised when a frame does not fit the FFT buffer."""

    def __init__(self, width: int, height: int, fft_size: int) -> None:
        self.width = width
        self.height = height
        self.fft_size = fft_size
        super().__init__(
            f"Frame {width}x{height} exceeds FFT buffer {fft_size}x{fft_size}"
        )


class UnsupportedBufferSizeError(SpectralInputError):
    """Raised when the FFT buffer size is not a power of two."""
    pass

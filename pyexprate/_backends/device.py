"""
Hardware detection for backend selection.

The fits run in float64 throughout, so a GPU is only worth using when it
has full-rate FP64.
"""

from dataclasses import dataclass
from typing import Optional


# Data center GPUs with full-rate FP64
FULL_FP64_MODELS = ('A100', 'A800', 'H100', 'H200', 'H800', 'V100', 'P100')


@dataclass
class DeviceInfo:
    """
    Detected compute hardware.

    Attributes
    ----------
    has_torch : bool
        Whether PyTorch is importable
    has_cuda : bool
        Whether a CUDA device is available
    gpu_name : str
        Human-readable device name
    full_fp64 : bool
        Whether the GPU runs FP64 at full rate
    """
    has_torch: bool
    has_cuda: bool
    gpu_name: str
    full_fp64: bool


def has_full_fp64(gpu_name: str) -> bool:
    """True for NVIDIA data center parts with full-rate FP64."""
    gpu_upper = gpu_name.upper()
    return any(model in gpu_upper for model in FULL_FP64_MODELS)


def detect_device() -> DeviceInfo:
    """Detect PyTorch and CUDA availability."""
    try:
        import torch
    except ImportError:
        return DeviceInfo(has_torch=False, has_cuda=False, gpu_name="CPU only", full_fp64=False)

    if not torch.cuda.is_available():
        return DeviceInfo(has_torch=True, has_cuda=False, gpu_name="CPU only", full_fp64=False)

    gpu_name = torch.cuda.get_device_name(0)
    return DeviceInfo(
        has_torch=True,
        has_cuda=True,
        gpu_name=gpu_name,
        full_fp64=has_full_fp64(gpu_name),
    )


def recommend_backend(info: Optional[DeviceInfo] = None) -> str:
    """Backend name 'auto' resolves to."""
    info = info if info is not None else detect_device()
    if info.has_cuda and info.full_fp64:
        return 'pytorch'
    return 'cpu'

"""
Backend selection and management.

Provides a unified interface for the sequential CPU, thread-pool CPU and
PyTorch (CUDA) backends.
"""

from .base import BackendBase, BatchFitResult
from .device import detect_device, recommend_backend, DeviceInfo
from .cpu_fp64_backend import CPUBackendFP64
from .cpu_threaded_backend import CPUThreadedBackend

# PyTorch backend is optional
try:
    import torch  # noqa: F401
    from .gpu_fp64_backend import PyTorchBackendFP64
    PYTORCH_AVAILABLE = True
except ImportError:
    PYTORCH_AVAILABLE = False


def get_backend(backend='cpu', **kwargs) -> BackendBase:
    """
    Get computational backend.

    Parameters
    ----------
    backend : str or BackendBase
        Backend selection:
        - 'cpu': Sequential NumPy backend (reference semantics)
        - 'threaded': NumPy backend on a thread pool (``max_workers``)
        - 'pytorch': Vectorised PyTorch backend (``device``)
        - 'auto': 'pytorch' on a full-FP64 CUDA GPU, otherwise 'cpu'
        A BackendBase instance is returned unchanged.
    **kwargs
        Passed to the backend constructor

    Returns
    -------
    BackendBase
        Backend instance

    Examples
    --------
    >>> backend = get_backend('cpu')
    >>> backend = get_backend('threaded', max_workers=4)
    """
    if isinstance(backend, BackendBase):
        return backend

    if backend == 'auto':
        backend = recommend_backend()

    if backend == 'cpu':
        return CPUBackendFP64(**kwargs)

    elif backend == 'threaded':
        return CPUThreadedBackend(**kwargs)

    elif backend == 'pytorch':
        if not PYTORCH_AVAILABLE:
            raise RuntimeError(
                "PyTorch backend unavailable.\n"
                "Install: pip install torch"
            )
        return PyTorchBackendFP64(**kwargs)

    else:
        raise ValueError(
            f"Unknown backend: '{backend}'\n"
            f"Valid options: 'auto', 'cpu', 'threaded', 'pytorch'"
        )


def list_available_backends() -> list:
    """List names of available backends."""
    backends = ['cpu', 'threaded']
    if PYTORCH_AVAILABLE:
        backends.append('pytorch')
    return backends


def print_backend_info():
    """Print detailed backend information (diagnostic)."""
    info = detect_device()

    print("PyExpRate Backend Status")
    print("=" * 50)
    print(f"\nAvailable Backends:")
    print(f"  CPU (FP64):           ✓ - sequential NumPy")
    print(f"  CPU threaded (FP64):  ✓ - thread pool over datasets")
    print(f"  PyTorch (FP64):       {'✓' if PYTORCH_AVAILABLE else '✗'} - vectorised batch")

    print(f"\nHardware Detection:")
    if info.has_cuda:
        print(f"  GPU Name: {info.gpu_name}")
        print(f"  Full-rate FP64: {info.full_fp64}")
    else:
        print(f"  No GPU detected")

    print(f"\nRecommended Backend:")
    print(f"  {recommend_backend(info)}")


__all__ = [
    'get_backend',
    'list_available_backends',
    'print_backend_info',
    'BackendBase',
    'BatchFitResult',
    'DeviceInfo',
    'detect_device',
    'PYTORCH_AVAILABLE',
]

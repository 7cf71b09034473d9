"""Request logging, histogram metrics, label selectors, toolchain resource clients and bearer-token auth middleware."""

__version__ = "0.1.0"
__all__ = ["log", "metrics", "resources", "labels", "kubeclient", "middleware"]
"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import AgentVMModalCLI, main

__all__ = ['AgentVMModalCLI', 'main']

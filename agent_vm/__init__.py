"""Per-directory coding-agent VMs cloned from a shared base template."""

__version__ = '0.1.0'

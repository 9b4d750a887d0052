"""Repository provider adapters.

This package contains the adapter that maps file-level sync operations onto
the GitHub and Gitee contents APIs.
"""

from .git_adapter import GitProviderAPI, GitProviderAdapter, classify_response

__all__ = ['GitProviderAPI', 'GitProviderAdapter', 'classify_response']

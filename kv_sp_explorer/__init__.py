"""
Interactive Azure Key Vault explorer driven through the Azure CLI.
"""
from .audit_log import AuditLog, AuditWriteError
from .azure_cli import AzureCli
from .browser import DetailCursor, Nav, VaultBrowser, filter_names
from .command_log import redact_command
from .config import ExplorerConfig
from .session import LoginManager, LoginOutcome, SessionState

__version__ = "0.1.0"

__all__ = [
    'AuditLog',
    'AuditWriteError',
    'AzureCli',
    'DetailCursor',
    'ExplorerConfig',
    'LoginManager',
    'LoginOutcome',
    'Nav',
    'SessionState',
    'VaultBrowser',
    'filter_names',
    'redact_command',
]

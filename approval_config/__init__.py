"""
approval_config -- workflow definitions as files.

Responsibility:
    Load administrator-authored YAML workflow files into frozen drafts and
    install them as workflow versions through the kernel's administration
    service.

Architecture position:
    Configuration -- sits above ``approval_kernel``.  The kernel MUST
    NEVER import from ``approval_config``.

Failure modes:
    - ``FileNotFoundError`` / ``yaml.YAMLError`` from reading a file.
    - ``KeyError`` / ``ValueError`` for structurally invalid documents.
    - ``ConfigurationError`` when an ``activate: true`` draft fails
      validation during install.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.directory import DirectoryUser, StaticDirectory
from approval_config.installer import InstallResult, install_document, install_draft
from approval_config.loader import (
    compute_checksum,
    load_directory,
    load_workflow_file,
)
from approval_config.schema import StepDraft, WorkflowDocument, WorkflowDraft

# Bundled workflow files
DEFAULT_SETS_DIR = Path(__file__).parent / "sets"

__all__ = [
    "DEFAULT_SETS_DIR",
    "DirectoryUser",
    "InstallResult",
    "StaticDirectory",
    "StepDraft",
    "WorkflowDocument",
    "WorkflowDraft",
    "compute_checksum",
    "install_document",
    "install_draft",
    "load_directory",
    "load_workflow_file",
]

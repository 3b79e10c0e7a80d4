"""
Generated file model — auxiliary configuration written alongside the manifest.
"""

from __future__ import annotations

from pydantic import BaseModel


class GeneratedFile(BaseModel):
    """A file produced by the generate phase.

    Attributes:
        path:       Absolute destination path.
        content:    Full file content.
        service_id: Service the file belongs to.
        overwrite:  Whether to replace an existing file.  Auxiliary
                    configs never do: operators edit them after install.
        reason:     Why this file was generated.
    """

    path: str
    content: str
    service_id: str = ""
    overwrite: bool = False
    reason: str = ""

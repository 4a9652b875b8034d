"""
models/project.py
-----------------
Domain model for client projects. Payments reference a project by id.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Project:
    """
    A consultancy project.

    Attributes:
        name: Display name of the project.
        client_name: Optional client/company name.
        status: 'Active' | 'Maintenance' | 'Legacy'.
        id: Store primary key (None for new records).
        created_at: Epoch milliseconds, set by the store.
    """
    name: str
    client_name: Optional[str] = None
    status: str = "Active"  # 'Active' | 'Maintenance' | 'Legacy'
    id: Optional[int] = None
    created_at: Optional[int] = None

    def __str__(self) -> str:
        client = f" ({self.client_name})" if self.client_name else ""
        return f"#{self.id} {self.name}{client} - {self.status}"

"""
repositories/project_repo.py
----------------------------
Data access layer for project records.
"""

from typing import Optional

from db.connection import get_connection, release_connection
from models.project import Project
from services.status_engine import to_epoch_ms
from utils.logger import get_logger

logger = get_logger(__name__)


class ProjectRepository:
    """Repository for CRUD operations on the projects table."""

    def add(self, project: Project) -> Project:
        """
        Insert a new project.

        Returns:
            The same object with its `id` and `created_at` populated.
        """
        query = """
            INSERT INTO projects (name, client_name, status)
            VALUES (%s, %s, %s)
            RETURNING id, created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query, (project.name, project.client_name, project.status))
                row = cur.fetchone()
                project.id = row[0]
                project.created_at = to_epoch_ms(row[1])
            conn.commit()
            logger.info(f"Added project '{project.name}' #{project.id}")
            return project
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add project '{project.name}': {e}")
            raise
        finally:
            release_connection(conn)

    def get_all(self) -> list[Project]:
        """Get all projects, newest first."""
        query = "SELECT id, name, client_name, status, created_at FROM projects ORDER BY created_at DESC;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query)
                return [self._row_to_project(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def get_by_id(self, project_id: int) -> Optional[Project]:
        """Fetch a single project by ID."""
        query = "SELECT id, name, client_name, status, created_at FROM projects WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query, (project_id,))
                row = cur.fetchone()
                return self._row_to_project(row) if row else None
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_project(row: tuple) -> Project:
        """Convert a database row tuple to a Project domain object."""
        return Project(
            id=row[0],
            name=row[1],
            client_name=row[2],
            status=row[3],
            created_at=to_epoch_ms(row[4]) if row[4] else None,
        )

"""
Endpoint wrappers for the construction management API.

Each wrapper is a thin call through ``ApiClient`` that returns the decoded
response payload; every dispatcher behaviour (dedup, ETag, refresh, retry)
applies unchanged.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .auth.refresh import extract_token_pair
from .client import ApiClient

logger = logging.getLogger("construction_client.resources")

EXPORT_FORMATS = ("xlsx", "pdf", "csv")


class ENDPOINTS:
    """Path table. Static paths are attributes, parameterized ones are functions."""

    class auth:
        login = "/api/auth/login"
        logout = "/api/auth/logout"
        register = "/api/auth/register"
        me = "/api/auth/me"
        refresh = "/api/auth/refresh"

    class projects:
        list = "/api/projects"
        create = "/api/projects"

        @staticmethod
        def get(project_id: str) -> str:
            return f"/api/projects/{project_id}"

        update = get
        delete = get

    class sheets:
        create = "/api/sheets"

        @staticmethod
        def list(project_id: str) -> str:
            return f"/api/projects/{project_id}/sheets"

        @staticmethod
        def get(sheet_id: str) -> str:
            return f"/api/sheets/{sheet_id}"

        update = get
        delete = get

        @staticmethod
        def import_(sheet_id: str) -> str:
            return f"/api/sheets/{sheet_id}/import"

        @staticmethod
        def export(sheet_id: str) -> str:
            return f"/api/sheets/{sheet_id}/export"

    class cells:
        @staticmethod
        def update(sheet_id: str) -> str:
            return f"/api/sheets/{sheet_id}/cells"

        @staticmethod
        def batch(sheet_id: str) -> str:
            return f"/api/sheets/{sheet_id}/cells/batch"

    class files:
        @staticmethod
        def upload(project_id: str) -> str:
            return f"/api/projects/{project_id}/files"

        list = upload

        @staticmethod
        def get(file_id: str) -> str:
            return f"/api/files/{file_id}"

        delete = get

    class chat:
        @staticmethod
        def messages(project_id: str) -> str:
            return f"/api/projects/{project_id}/chat"

        @staticmethod
        def send(project_id: str) -> str:
            return f"/api/projects/{project_id}/chat/send"

    class analytics:
        @staticmethod
        def kpi(project_id: str) -> str:
            return f"/api/projects/{project_id}/analytics/kpi"

        @staticmethod
        def predictions(project_id: str) -> str:
            return f"/api/projects/{project_id}/analytics/predictions"

        @staticmethod
        def risks(project_id: str) -> str:
            return f"/api/projects/{project_id}/analytics/risks"


class _Resource:
    def __init__(self, client: ApiClient) -> None:
        self._client = client


class AuthApi(_Resource):
    async def login(self, email: str, password: str) -> Any:
        """Sign in and install the returned token pair on the client."""
        response = await self._client.post(
            ENDPOINTS.auth.login,
            json={"email": email, "password": password},
            dedupe_key=False,
        )
        pair = extract_token_pair(response["data"], response["headers"])
        if pair is not None:
            self._client.set_tokens(pair)
        else:
            logger.warning("login: response carried no access token")
        return response["data"]

    async def logout(self) -> Any:
        try:
            response = await self._client.post(ENDPOINTS.auth.logout, dedupe_key=False)
        finally:
            self._client.clear_tokens()
        return response["data"]

    async def me(self) -> Any:
        return (await self._client.get(ENDPOINTS.auth.me))["data"]

    async def register(self, email: str, password: str, name: str) -> Any:
        response = await self._client.post(
            ENDPOINTS.auth.register,
            json={"email": email, "password": password, "name": name},
        )
        return response["data"]

    async def refresh(self) -> Optional[str]:
        """Force a token refresh; returns the new access token or None."""
        return await self._client.coordinator.refresh()


class ProjectsApi(_Resource):
    async def list(self, page: int = 1, limit: int = 10) -> Any:
        response = await self._client.get(
            ENDPOINTS.projects.list, query={"page": page, "limit": limit}
        )
        return response["data"]

    async def create(
        self,
        name: str,
        description: Optional[str] = None,
        budget: Optional[float] = None,
        dedupe_key: Optional[str] = None,
    ) -> Any:
        body: Dict[str, Any] = {"name": name}
        if description is not None:
            body["description"] = description
        if budget is not None:
            body["budget"] = budget
        response = await self._client.post(
            ENDPOINTS.projects.create, json=body, dedupe_key=dedupe_key
        )
        return response["data"]

    async def get(self, project_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.projects.get(project_id)))["data"]

    async def update(self, project_id: str, updates: Dict[str, Any]) -> Any:
        response = await self._client.put(ENDPOINTS.projects.update(project_id), json=updates)
        return response["data"]

    async def delete(self, project_id: str) -> Any:
        return (await self._client.delete(ENDPOINTS.projects.delete(project_id)))["data"]


class SheetsApi(_Resource):
    async def list(self, project_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.sheets.list(project_id)))["data"]

    async def create(self, name: str, project_id: str, description: Optional[str] = None) -> Any:
        body: Dict[str, Any] = {"name": name, "projectId": project_id}
        if description is not None:
            body["description"] = description
        return (await self._client.post(ENDPOINTS.sheets.create, json=body))["data"]

    async def get(self, sheet_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.sheets.get(sheet_id)))["data"]

    async def update(self, sheet_id: str, updates: Dict[str, Any]) -> Any:
        response = await self._client.put(ENDPOINTS.sheets.update(sheet_id), json=updates)
        return response["data"]

    async def delete(self, sheet_id: str) -> Any:
        return (await self._client.delete(ENDPOINTS.sheets.delete(sheet_id)))["data"]

    async def import_file(
        self,
        sheet_id: str,
        file_name: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> Any:
        response = await self._client.upload(
            ENDPOINTS.sheets.import_(sheet_id), file_name, content, content_type
        )
        return response["data"]

    async def export(self, sheet_id: str, format: str = "xlsx") -> bytes:
        if format not in EXPORT_FORMATS:
            raise ValueError(f"format must be one of {', '.join(EXPORT_FORMATS)}, got {format!r}")
        return await self._client.download(
            ENDPOINTS.sheets.export(sheet_id), query={"format": format}
        )


CellValue = Dict[str, Union[int, str, float, None]]


class CellsApi(_Resource):
    async def update(self, sheet_id: str, cell: CellValue) -> Any:
        """Patch one cell: ``{"row", "column", "value", "formula"?}``."""
        return (await self._client.patch(ENDPOINTS.cells.update(sheet_id), json=cell))["data"]

    async def update_many(self, sheet_id: str, cells: List[CellValue]) -> Any:
        response = await self._client.patch(
            ENDPOINTS.cells.batch(sheet_id), json={"cells": cells}
        )
        return response["data"]


class FilesApi(_Resource):
    async def upload(
        self,
        project_id: str,
        file_name: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> Any:
        response = await self._client.upload(
            ENDPOINTS.files.upload(project_id),
            file_name,
            content,
            content_type,
            on_progress=on_progress,
        )
        return response["data"]

    async def list(self, project_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.files.list(project_id)))["data"]

    async def get(self, file_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.files.get(file_id)))["data"]

    async def delete(self, file_id: str) -> Any:
        return (await self._client.delete(ENDPOINTS.files.delete(file_id)))["data"]


class ChatApi(_Resource):
    async def messages(self, project_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.chat.messages(project_id)))["data"]

    async def send(
        self,
        project_id: str,
        content: str,
        type: Optional[str] = None,
        attachments: Optional[List[str]] = None,
    ) -> Any:
        body: Dict[str, Any] = {"content": content}
        if type is not None:
            body["type"] = type
        if attachments:
            body["attachments"] = attachments
        return (await self._client.post(ENDPOINTS.chat.send(project_id), json=body))["data"]


class AnalyticsApi(_Resource):
    async def kpi(self, project_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.analytics.kpi(project_id)))["data"]

    async def predictions(self, project_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.analytics.predictions(project_id)))["data"]

    async def risks(self, project_id: str) -> Any:
        return (await self._client.get(ENDPOINTS.analytics.risks(project_id)))["data"]


class ConstructionApi:
    """All endpoint groups bound to one client."""

    def __init__(self, client: ApiClient) -> None:
        self.client = client
        self.auth = AuthApi(client)
        self.projects = ProjectsApi(client)
        self.sheets = SheetsApi(client)
        self.cells = CellsApi(client)
        self.files = FilesApi(client)
        self.chat = ChatApi(client)
        self.analytics = AnalyticsApi(client)

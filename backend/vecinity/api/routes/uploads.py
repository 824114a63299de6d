"""Uploads — static serving of user-uploaded files under /uploads.

Invariants:
    - Every served file (200 and 304) carries Cross-Origin-Resource-Policy: cross-origin
    - Missing files fall through to the 404 envelope via the HTTPException handler
"""

import os
from pathlib import Path

from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

UPLOADS_PREFIX = "/uploads"


class UploadFiles(StaticFiles):
    """StaticFiles that tags assets as fetchable from any origin."""

    def file_response(
        self,
        full_path: str | os.PathLike,
        stat_result: os.stat_result,
        scope: Scope,
        status_code: int = 200,
    ) -> Response:
        response = super().file_response(full_path, stat_result, scope, status_code)
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        return response


def create_upload_files(directory: Path) -> UploadFiles:
    directory.mkdir(parents=True, exist_ok=True)
    return UploadFiles(directory=directory)

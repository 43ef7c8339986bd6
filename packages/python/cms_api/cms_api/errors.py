"""Translate node tree errors into HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from node_tree import NodeTreeError

STATUS_BY_CODE = {
    "not_found": 404,
    "conflict": 409,
    "invalid_argument": 422,
    "internal": 500,
}


async def node_tree_error_handler(request: Request, exc: NodeTreeError) -> JSONResponse:
    status = STATUS_BY_CODE.get(exc.code, 500)
    if status >= 500:
        logger.error(
            "{method} {path} failed: {error}",
            method=request.method,
            path=request.url.path,
            error=exc.message,
        )
        body = {"code": "internal", "message": "Internal storage error"}
    else:
        body = exc.to_dict()
    return JSONResponse(status_code=status, content={"error": body})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NodeTreeError, node_tree_error_handler)

"""
FinSync - Development Backend Application

PURPOSE: Local stand-in for the hosted backend's table API
SCOPE: PostgREST-style routes with owner-scoped access, health check
DEPENDENCIES: FastAPI, database.py, config.py

Run with ``uvicorn finsync.app:app``. The bearer token is taken as the
caller's user id; there is no password check.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from .config import config
from .database import DatabaseManager
from .validators import sanitize_form_data

logger = logging.getLogger(__name__)

RESERVED_PARAMS = ('select', 'order')


def _parse_filters(request: Request) -> Tuple[Dict[str, str], Optional[str]]:
    """Split PostgREST query params into ``eq.`` filters and the ordering."""
    filters = {}
    for column, raw in request.query_params.items():
        if column in RESERVED_PARAMS:
            continue
        operator, _, value = raw.partition('.')
        if operator != 'eq':
            raise HTTPException(status_code=400, detail=f"Unsupported filter operator: {operator}")
        filters[column] = value
    return filters, request.query_params.get('order')


def create_app(db_file: Optional[str] = None) -> FastAPI:
    db_manager = DatabaseManager(db_file or config.DB_FILE)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize the database on startup."""
        await db_manager.ensure_initialized()
        logger.info("Database initialized successfully.")
        yield

    app = FastAPI(title="FinSync Dev Backend", lifespan=lifespan)
    app.state.db_manager = db_manager

    def known_table(table: str) -> str:
        if table not in config.TABLES.values():
            raise HTTPException(status_code=404, detail=f"Relation {table} does not exist")
        return table

    def current_user(authorization: str = Header('')) -> str:
        scheme, _, token = authorization.partition(' ')
        token = token.strip()
        if scheme.lower() != 'bearer' or not token or token == config.SUPABASE_ANON_KEY:
            raise HTTPException(status_code=401, detail="JWT required")
        return token

    # ========================================================================
    # TABLE ENDPOINTS
    # ========================================================================

    @app.get("/rest/v1/{table}")
    async def select_rows(request: Request, table: str = Depends(known_table),
                          user_id: str = Depends(current_user)):
        filters, order = _parse_filters(request)
        return await db_manager.select_rows(table, user_id, filters, order)

    @app.post("/rest/v1/{table}", status_code=201)
    async def insert_rows(request: Request, table: str = Depends(known_table),
                          user_id: str = Depends(current_user), prefer: str = Header('')):
        payload = await request.json()
        rows: List[Dict[str, Any]] = payload if isinstance(payload, list) else [payload]

        stored = []
        for row in rows:
            if not isinstance(row, dict):
                raise HTTPException(status_code=400, detail="Row must be a JSON object")
            row = sanitize_form_data(row)
            if not row.get('user_id'):
                raise HTTPException(status_code=400, detail='null value in column "user_id" violates not-null constraint')
            if row['user_id'] != user_id:
                raise HTTPException(status_code=403, detail=f"new row violates row-level security policy for table \"{table}\"")
            stored.append(await db_manager.insert_row(table, user_id, row))

        if 'return=representation' in prefer:
            return stored
        return Response(status_code=201)

    @app.patch("/rest/v1/{table}", status_code=204)
    async def update_rows(request: Request, table: str = Depends(known_table),
                          user_id: str = Depends(current_user)):
        filters, _ = _parse_filters(request)
        partial = await request.json()
        if not isinstance(partial, dict):
            raise HTTPException(status_code=400, detail="Update body must be a JSON object")
        await db_manager.update_rows(table, user_id, filters, sanitize_form_data(partial))
        return Response(status_code=204)

    @app.delete("/rest/v1/{table}", status_code=204)
    async def delete_rows(request: Request, table: str = Depends(known_table),
                          user_id: str = Depends(current_user)):
        filters, _ = _parse_filters(request)
        if not filters:
            raise HTTPException(status_code=400, detail="DELETE requires a filter")
        await db_manager.delete_rows(table, user_id, filters)
        return Response(status_code=204)

    # ========================================================================
    # HEALTH CHECK
    # ========================================================================

    @app.get("/health")
    async def health_check():
        return JSONResponse({"status": "healthy"})

    return app


app = create_app()

from __future__ import annotations

from typing import Callable, Mapping, Optional

from fastapi import HTTPException, Request

from .errors import BadFormatError, QueryParseError
from .query import Filter, translate_query


def query_filter(format_map: Optional[Mapping[str, str]] = None) -> Callable[[Request], Filter]:
    """
    Build a dependency that turns the request's query string into a ``Filter``.

    Translation errors are reported as 400 responses.

    ```python
    from fastapi import Depends
    from mongo_helper import Filter, get
    from mongo_helper.fastapi_integration import query_filter

    @app.get("/orders")
    def list_orders(f: Filter = Depends(query_filter({"total": "int"}))):
        return get().get_all(f, "orders", "shop")
    ```
    """

    def dependency(request: Request) -> Filter:
        try:
            return translate_query(request.query_params, format_map)
        except (BadFormatError, QueryParseError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    return dependency

"""Access to grid ranges: the GridSource interface and its Sheets implementation."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol, TypeVar
from urllib.parse import quote

import httpx

from sheet_sql.config import Settings, get_settings
from sheet_sql.errors import RemoteError, SheetSqlError
from sheet_sql.location import GridLocation

logger = logging.getLogger(__name__)

T = TypeVar("T")

_JSONP_RE = re.compile(r"google\.visualization\.Query\.setResponse\((.*)\);?\s*$", re.DOTALL)

_METADATA_FIELDS = "sheets(data(rowData(values(formattedValue,userEnteredValue,effectiveFormat))))"


@dataclass
class CellUpdate:
    """New values for one rectangular A1 range."""

    range: str
    values: list[list[Any]]


@dataclass
class WriteReceipt:
    update_time: str | None = None


class GridSource(Protocol):
    """Authenticated access to the cells of a spreadsheet."""

    def read_range(self, location: GridLocation) -> list[list[Any]]:
        """Raw cell values of a range, header rows included."""
        ...

    def query(self, location: GridLocation, native_query: str) -> dict[str, Any]:
        """Run a native-dialect query and return its ``table`` payload."""
        ...

    def read_metadata(self, location: GridLocation) -> Any: ...

    def update_cells(self, location: GridLocation, updates: list[CellUpdate]) -> WriteReceipt: ...

    def append_rows(self, location: GridLocation, rows: list[list[Any]]) -> WriteReceipt: ...

    def delete_rows(self, location: GridLocation, row_numbers: list[int]) -> WriteReceipt:
        """Delete whole sheet rows (1-based row numbers)."""
        ...


class SheetsGridSource:
    """GridSource over the Sheets v4 REST API and the visualization query endpoint."""

    def __init__(
        self,
        access_token: str,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=self.settings.request_timeout)
        self._headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
        self._sheet_ids: dict[tuple[str, str], int] = {}

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SheetsGridSource:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # --- Reads ---

    def read_range(self, location: GridLocation) -> list[list[Any]]:
        url = f"{self._spreadsheet_url(location)}/values/{quote(location.range, safe='')}"
        params = {"valueRenderOption": "UNFORMATTED_VALUE", "dateTimeRenderOption": "FORMATTED_STRING"}
        payload = self._request("GET", url, f"Read of {location.range}", params=params).json()
        values = payload.get("values", [])
        logger.debug("Read %d rows from %s", len(values), location.range)
        return values

    def query(self, location: GridLocation, native_query: str) -> dict[str, Any]:
        url = f"{self.settings.gviz_url}/{location.spreadsheet_id}/gviz/tq"
        params = {
            "range": location.range,
            "tq": native_query,
            "tqx": "out:json",
            "headers": str(self.settings.header_rows),
        }
        logger.debug("Native query against %s: %s", location.range, native_query)
        text = self._request("GET", url, "SELECT query", params=params).text
        return parse_query_response(text)

    def read_metadata(self, location: GridLocation) -> Any:
        params = {"ranges": location.range, "includeGridData": "true", "fields": _METADATA_FIELDS}
        payload = self._request("GET", self._spreadsheet_url(location), "Metadata read", params=params).json()
        sheets = payload.get("sheets") or [{}]
        data = sheets[0].get("data") or [{}]
        return data[0].get("rowData", [])

    # --- Writes ---

    def update_cells(self, location: GridLocation, updates: list[CellUpdate]) -> WriteReceipt:
        body = {
            "valueInputOption": "USER_ENTERED",
            "data": [{"range": u.range, "values": u.values} for u in updates],
        }
        url = f"{self._spreadsheet_url(location)}/values:batchUpdate"
        payload = self._request("POST", url, "UPDATE batch operation", json=body).json()
        logger.debug("Updated %s cells", payload.get("totalUpdatedCells"))
        return WriteReceipt(update_time=_update_time(payload))

    def append_rows(self, location: GridLocation, rows: list[list[Any]]) -> WriteReceipt:
        url = f"{self._spreadsheet_url(location)}/values/{quote(location.range, safe='')}:append"
        params = {"valueInputOption": "USER_ENTERED"}
        payload = self._request("POST", url, "INSERT", params=params, json={"values": rows}).json()
        return WriteReceipt(update_time=_update_time(payload))

    def delete_rows(self, location: GridLocation, row_numbers: list[int]) -> WriteReceipt:
        sheet_id = self._sheet_id(location)
        # Bottom-up, so earlier deletions do not shift later ones
        requests = [
            {
                "deleteDimension": {
                    "range": {"sheetId": sheet_id, "dimension": "ROWS", "startIndex": n - 1, "endIndex": n}
                }
            }
            for n in sorted(row_numbers, reverse=True)
        ]
        url = f"{self._spreadsheet_url(location)}:batchUpdate"
        payload = self._request("POST", url, "DELETE batch operation", json={"requests": requests}).json()
        return WriteReceipt(update_time=_update_time(payload))

    # --- Helpers ---

    def _spreadsheet_url(self, location: GridLocation) -> str:
        return f"{self.settings.sheets_api_url}/spreadsheets/{location.spreadsheet_id}"

    def _sheet_id(self, location: GridLocation) -> int:
        key = (location.spreadsheet_id, location.sheet_name)
        if key in self._sheet_ids:
            return self._sheet_ids[key]
        params = {"fields": "sheets(properties(title,sheetId))"}
        payload = self._request("GET", self._spreadsheet_url(location), "Sheet lookup", params=params).json()
        sheets = payload.get("sheets", [])
        for sheet in sheets:
            props = sheet.get("properties", {})
            if not location.sheet_name or props.get("title") == location.sheet_name:
                self._sheet_ids[key] = props["sheetId"]
                return props["sheetId"]
        raise RemoteError(f'Sheet "{location.sheet_name}" not found', status=404)

    def _request(self, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"{action} failed: {e}") from e
        if response.is_error:
            raise RemoteError(
                f"{action} failed: {response.status_code} {response.reason_phrase}\n{response.text}",
                status=response.status_code,
            )
        return response


def parse_query_response(text: str) -> dict[str, Any]:
    """Extract the ``table`` payload from a JSONP visualization response."""
    match = _JSONP_RE.search(text.strip())
    if not match:
        raise RemoteError("Invalid response format from the visualization query endpoint")
    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        raise RemoteError(f"Invalid response format from the visualization query endpoint: {e}") from e
    if payload.get("status") == "error":
        details = ", ".join(e.get("detailed_message") or e.get("message", "") for e in payload.get("errors", []))
        raise RemoteError(f"Query error: {details}")
    return payload.get("table", {"cols": [], "rows": []})


def _update_time(payload: dict[str, Any]) -> str | None:
    return payload.get("updateTime") or payload.get("updates", {}).get("updateTime")


def guarded(action: str, fn: Callable[..., T], *args: Any) -> T:
    """Call a GridSource method, wrapping foreign failures in RemoteError."""
    try:
        return fn(*args)
    except SheetSqlError:
        raise
    except Exception as e:
        status = getattr(e, "status", None) or getattr(e, "status_code", None)
        raise RemoteError(f"{action} failed: {e}", status=status) from e

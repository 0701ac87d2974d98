# Overview: Flask API routes for components; parses input and returns JSON responses.

"""
Component catalogue routes.

SECURITY: All routes require an identified caller.
- Read operations require view
- Create/update/import require edit
- Delete requires all
"""

import io

from flask import Blueprint, Response, request, g, current_app

from ..decorators import require_auth, require_capability
from ..models.enums import Capability
from ..services import component_service, csv_service
from ..validation import ValidationError, ConflictError, NotFoundError
from compstock.time_utils import utcnow


components_bp = Blueprint("components", __name__, url_prefix="/api/components")

LIST_FILTER_KEYS = (
    "category",
    "location",
    "stock_status",
    "search",
    "min_quantity",
    "max_quantity",
    "min_price",
    "max_price",
    "sort_by",
    "sort_order",
    "page",
    "limit",
)

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


@components_bp.get("")
@require_auth
@require_capability(Capability.VIEW)
def list_components_route():
    """
    List active components.

    Query params: category, location, stock_status, search, min_quantity,
    max_quantity, min_price, max_price, sort_by, sort_order, page, limit
    """
    filters = {k: request.args.get(k) for k in LIST_FILTER_KEYS if request.args.get(k) is not None}
    try:
        return component_service.list_components(filters)
    except ValidationError as e:
        return {"error": str(e)}, 400


@components_bp.post("")
@require_auth
@require_capability(Capability.EDIT)
def create_component_route():
    payload = request.get_json(silent=True) or {}

    try:
        component = component_service.create_component(payload, g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"component": component.to_dict()}, 201


@components_bp.get("/stats/summary")
@require_auth
@require_capability(Capability.VIEW)
def inventory_summary_route():
    return component_service.get_inventory_summary()


@components_bp.get("/export")
@require_auth
@require_capability(Capability.VIEW)
def export_components_route():
    body = csv_service.export_components_csv()
    filename = f"components_{utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _read_xlsx_rows(stream) -> list[dict]:
    from openpyxl import load_workbook
    wb = load_workbook(stream, data_only=True)
    sheet = wb.active
    data = list(sheet.values)
    if not data:
        return []
    headers = [str(h) if h is not None else "" for h in data[0]]
    return [
        {headers[i]: row[i] for i in range(len(headers))}
        for row in data[1:]
    ]


@components_bp.post("/import")
@require_auth
@require_capability(Capability.EDIT)
def import_components_route():
    """
    Import components from CSV (multipart "file" or raw text/csv body).
    Excel workbooks are accepted as multipart uploads.
    """
    try:
        if "file" in request.files:
            file = request.files["file"]
            ext = (file.filename or "").split(".")[-1].lower()
            if ext in XLSX_EXTENSIONS:
                rows = _read_xlsx_rows(io.BytesIO(file.stream.read()))
            else:
                rows = csv_service.parse_csv(file.stream.read().decode("utf-8"))
        else:
            text = request.get_data(as_text=True)
            if not text.strip():
                return {"error": "CSV file is required"}, 400
            rows = csv_service.parse_csv(text)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except UnicodeDecodeError:
        return {"error": "File must be UTF-8 encoded"}, 400
    except Exception:
        current_app.logger.exception("Failed to parse component import")
        return {"error": "Failed to parse upload"}, 400

    report = csv_service.import_component_rows(rows, g.current_user)
    return report.to_dict(), 201 if report.created else 200


@components_bp.get("/<int:component_id>")
@require_auth
@require_capability(Capability.VIEW)
def get_component_route(component_id: int):
    include_movements = request.args.get("include_movements", "").lower() in {"1", "true", "yes"}
    try:
        component = component_service.get_component(component_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"component": component.to_dict(include_movements=include_movements)}


@components_bp.put("/<int:component_id>")
@require_auth
@require_capability(Capability.EDIT)
def update_component_route(component_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        component = component_service.update_component(component_id, payload, g.current_user)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"component": component.to_dict()}


@components_bp.delete("/<int:component_id>")
@require_auth
@require_capability(Capability.ALL)
def delete_component_route(component_id: int):
    try:
        component_service.deactivate_component(component_id, g.current_user)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200

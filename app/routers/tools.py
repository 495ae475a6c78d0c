from datetime import datetime
import io
from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session, select
from fastapi.responses import Response
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill
from openpyxl.worksheet.table import Table, TableStyleInfo
from app.clock import utcnow
from app.db import get_session
from app.schemas import ToolCreate, ToolRead, ToolUpdate, ToolListResponse
from app.deps import require_admin, require_manager, require_user
from app.models import Category, Tool, User
from app.error import abort

router = APIRouter(prefix="/tools", tags=["tools"])


def _to_read(tool: Tool, category: Category | None) -> ToolRead:
    return ToolRead(
        **tool.model_dump(exclude={"created_at"}),
        category_name=category.name if category else None,
    )


def _require_category(session: Session, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if not category:
        abort(400, "CATEGORY_NOT_FOUND", "Category not found")
    return category


def _commit_unique_code(session: Session) -> None:
    # unique index backs up the pre-check under concurrent writers
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, "TOOL_CODE_EXISTS", "Tool ID already exists")


@router.post("", response_model=ToolRead, status_code=status.HTTP_201_CREATED)
def create_tool(
        data: ToolCreate,
        session: Session = Depends(get_session),
        _user: User = Depends(require_manager),
):
    if session.exec(select(Tool).where(Tool.tool_code == data.tool_code)).first():
        abort(400, "TOOL_CODE_EXISTS", "Tool ID already exists")

    category = _require_category(session, data.category_id)

    tool = Tool(
        tool_name=data.tool_name,
        tool_code=data.tool_code,
        category_id=category.id,
        status=data.status.value,
        purchase_date=data.purchase_date,
        location=data.location.strip(),
        image=data.image.strip(),
    )
    session.add(tool)
    _commit_unique_code(session)
    session.refresh(tool)
    return _to_read(tool, category)


@router.get("", response_model=ToolListResponse)
def list_tools(
        search: str | None = None,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        sort: str = Query(
            "id_desc",
            description="id_desc/id_asc/name_asc/name_desc/status_asc/status_desc",
        ),
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    conds = []
    keyword = (search or "").strip().lower()
    if keyword:
        conds.append(or_(
            func.lower(Tool.tool_name).contains(keyword),
            func.lower(Tool.tool_code).contains(keyword),
        ))

    count_stmt = select(func.count()).select_from(Tool)
    if conds:
        count_stmt = count_stmt.where(*conds)
    total = session.exec(count_stmt).one()

    order_map = {
        "id_desc": Tool.id.desc(),
        "id_asc": Tool.id.asc(),
        "name_asc": Tool.tool_name.asc(),
        "name_desc": Tool.tool_name.desc(),
        "status_asc": Tool.status.asc(),
        "status_desc": Tool.status.desc(),
    }
    if sort not in order_map:
        abort(400, "BAD_REQUEST", f"unsupported sort: {sort}")

    items_stmt = select(Tool, Category).join(Category, Tool.category_id == Category.id, isouter=True)
    if conds:
        items_stmt = items_stmt.where(*conds)

    rows = session.exec(items_stmt.order_by(order_map[sort]).offset(offset).limit(limit)).all()

    return {
        "items": [_to_read(tool, category) for tool, category in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "search": search,
    }


@router.get("/export.xlsx")
def export_tools_xlsx(
    search: str | None = None,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    stmt = (
        select(Tool, Category)
        .join(Category, Tool.category_id == Category.id, isouter=True)
        .order_by(Tool.id.asc())
    )
    keyword = (search or "").strip().lower()
    if keyword:
        stmt = stmt.where(
            or_(
                func.lower(Tool.tool_name).contains(keyword),
                func.lower(Tool.tool_code).contains(keyword),
            )
        )
    rows = session.exec(stmt).all()

    header = ["#", "Tool ID", "Name", "Category", "Status", "Location", "Purchase date", "Updated"]

    def norm_str(v, default: str) -> str:
        if v is None:
            return default
        s = str(v).strip()
        return s if s else default

    wb = Workbook()
    ws = wb.active
    ws.title = "Tool inventory"

    header_font = Font(bold=True)
    header_fill = PatternFill("solid", fgColor="DDDDDD")
    header_align = Alignment(horizontal="center", vertical="center")

    ws.append(header)
    ws.row_dimensions[1].height = 26
    for col in range(1, len(header) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align

    for tool, category in rows:
        ws.append([
            tool.id,
            norm_str(tool.tool_code, ""),
            norm_str(tool.tool_name, "Unnamed"),
            norm_str(category.name if category else None, "Uncategorized"),
            norm_str(tool.status, "Available"),
            norm_str(tool.location, ""),
            tool.purchase_date,
            tool.updated_at,
        ])

    data_end_row = 1 + len(rows)

    ws.freeze_panes = "A2"

    for r in range(2, data_end_row + 1):
        ws.cell(row=r, column=7).number_format = "yyyy-mm-dd"
        ws.cell(row=r, column=8).number_format = "yyyy-mm-dd hh:mm:ss"

    col_widths = {"A": 6, "B": 14, "C": 26, "D": 18, "E": 16, "F": 16, "G": 14, "H": 20}
    for k, w in col_widths.items():
        ws.column_dimensions[k].width = w

    # the table range needs at least the header row
    table = Table(displayName=f"ToolInventory_{datetime.now().strftime('%H%M%S')}", ref=f"A1:H{max(1, data_end_row)}")
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9",
        showFirstColumn=False,
        showLastColumn=False,
        showRowStripes=True,
        showColumnStripes=False,
    )
    ws.add_table(table)

    ws.append([])
    ws.append(["Exported at", datetime.now().strftime("%Y-%m-%d %H:%M:%S")])

    buf = io.BytesIO()
    wb.save(buf)

    return Response(
        content=buf.getvalue(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="tool-inventory.xlsx"'},
    )


@router.get("/{tool_id}", response_model=ToolRead)
def get_tool(
        tool_id: int,
        session: Session = Depends(get_session),
        _user: User = Depends(require_user),
):
    tool = session.get(Tool, tool_id)
    if not tool:
        abort(404, "NOT_FOUND", "Tool not found")
    return _to_read(tool, session.get(Category, tool.category_id))


@router.put("/{tool_id}", response_model=ToolRead)
def update_tool(
        tool_id: int,
        data: ToolUpdate,
        session: Session = Depends(get_session),
        _user: User = Depends(require_manager),
):
    tool = session.get(Tool, tool_id)
    if not tool:
        abort(404, "NOT_FOUND", "Tool not found")

    if data.tool_code and data.tool_code.strip() != tool.tool_code:
        code = data.tool_code.strip()
        if session.exec(select(Tool).where(Tool.tool_code == code)).first():
            abort(400, "TOOL_CODE_EXISTS", "Tool ID already in use")
        tool.tool_code = code

    if data.category_id is not None:
        tool.category_id = _require_category(session, data.category_id).id

    if data.tool_name and data.tool_name.strip():
        tool.tool_name = data.tool_name.strip()
    if data.status is not None:
        tool.status = data.status.value
    if "purchase_date" in data.model_fields_set:
        tool.purchase_date = data.purchase_date
    if data.location:
        tool.location = data.location.strip()
    if data.image is not None:
        tool.image = data.image.strip()
    tool.updated_at = utcnow()

    session.add(tool)
    _commit_unique_code(session)
    session.refresh(tool)
    return _to_read(tool, session.get(Category, tool.category_id))


@router.delete("/{tool_id}")
def delete_tool(
        tool_id: int,
        session: Session = Depends(get_session),
        _user: User = Depends(require_admin),
):
    tool = session.get(Tool, tool_id)
    if not tool:
        abort(404, "NOT_FOUND", "Tool not found")
    session.delete(tool)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, "IN_USE", "Tool has transactions and cannot be deleted")
    return {"ok": True}

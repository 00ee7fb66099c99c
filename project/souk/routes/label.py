# souk/routes/label.py

from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response

from souk.routes.auth import OPERATOR_OR_ABOVE, require_roles
from souk.schemas.label import BatchDownloadRequest, ShippingLabel
from souk.services.shipping import (
    LabelContent,
    download_label_service,
    download_labels_batch_service,
    read_labels_service,
)

router = APIRouter()


def label_response(content: LabelContent) -> Response:
    if content.redirect_url:
        return RedirectResponse(content.redirect_url, status_code=302)
    return Response(
        content=content.pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{content.filename}"'},
    )


@router.get("/", response_model=List[ShippingLabel], summary="Список этикеток")
async def read_labels(
    request: Request,
    skip: int = 0,
    limit: int = 100,
    _=Depends(require_roles(*OPERATOR_OR_ABOVE)),
):
    return await read_labels_service(request.state.db, skip, limit)


@router.get(
    "/{id}/download",
    summary="Скачать этикетку (PDF или перенаправление)",
    responses={
        200: {"description": "PDF", "content": {"application/pdf": {}}},
        302: {"description": "Перенаправление на этикетку перевозчика"},
        404: {"description": "Этикетка или её содержимое не найдены"},
        502: {"description": "Перевозчик не отдал этикетку"},
    },
)
async def download_label(id: int, request: Request, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    try:
        content = await download_label_service(request.state.db, request.app.state.log, request.app.state.http, id)
    except Exception as e:
        await request.app.state.log.log_error("label", f"Ошибка загрузки этикетки: {str(e)}", {"id": id})
        raise
    return label_response(content)


@router.post(
    "/download-batch",
    summary="Одна PDF на несколько отправлений",
    responses={
        200: {"description": "PDF", "content": {"application/pdf": {}}},
        400: {"description": "Разные перевозчики или перевозчик не настроен"},
        404: {"description": "Отправления не найдены"},
    },
)
async def download_batch(request: Request, body: BatchDownloadRequest, _=Depends(require_roles(*OPERATOR_OR_ABOVE))):
    content = await download_labels_batch_service(
        request.state.db, request.app.state.log, request.app.state.http, body.tracking_numbers
    )
    return label_response(content)

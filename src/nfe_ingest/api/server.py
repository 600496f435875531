"""FastAPI application exposing the ingestion pipeline."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import Settings
from ..core.errors import InvalidFormatError, InvoiceError
from ..core.models import ParsedInvoice, Product, record_to_json
from ..core.pipeline import InvoicePipeline
from ..core.utils import round_money


class ParseRequest(BaseModel):
    url: Optional[str] = None
    qr_code: Optional[str] = None
    force_refresh: bool = False


class CreateInvoiceRequest(ParseRequest):
    custom_category: Optional[str] = None
    transaction_id: Optional[str] = None
    account_id: Optional[str] = None


class UpdateInvoiceRequest(BaseModel):
    category: Optional[str] = None
    custom_category: Optional[str] = None
    transaction_id: Optional[str] = None
    account_id: Optional[str] = None


UPLOAD_KINDS = {".xml": "xml", ".html": "html", ".htm": "html", ".pdf": "pdf"}


def _parse_request(pipeline: InvoicePipeline, request: ParseRequest) -> ParsedInvoice:
    if request.url:
        return pipeline.parse(request.url, kind="url", force_refresh=request.force_refresh)
    if request.qr_code:
        return pipeline.parse(request.qr_code, kind="qr", force_refresh=request.force_refresh)
    raise InvalidFormatError("Either url or qr_code must be provided")


def _product_json(product: Product) -> dict:
    data = record_to_json(asdict(product))
    data["average_price"] = round_money(product.average_price)
    return data


def create_app(settings: Settings, pipeline: Optional[InvoicePipeline] = None) -> FastAPI:
    app = FastAPI(title="NF-e Invoice Ingestion")
    invoice_pipeline = pipeline or InvoicePipeline(settings)

    def get_pipeline() -> InvoicePipeline:
        return invoice_pipeline

    def get_user(x_user_id: Optional[str] = Header(None)) -> str:
        if not x_user_id:
            raise HTTPException(status_code=401, detail="Cabeçalho X-User-Id obrigatório")
        return x_user_id

    @app.exception_handler(InvoiceError)
    async def invoice_error_handler(request: Request, exc: InvoiceError) -> JSONResponse:
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "cache": invoice_pipeline.cache.as_dict()}

    @app.post("/invoices/parse")
    def parse_invoice(request: ParseRequest, pipeline: InvoicePipeline = Depends(get_pipeline)) -> dict:
        return _parse_request(pipeline, request).to_dict()

    @app.post("/invoices/upload")
    def upload_invoice(
        file: UploadFile = File(...),
        save: bool = Query(False, description="Persist the parsed invoice"),
        custom_category: Optional[str] = Query(None),
        x_user_id: Optional[str] = Header(None),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> dict:
        kind = UPLOAD_KINDS.get(Path(file.filename or "").suffix.lower())
        if kind is None:
            raise HTTPException(status_code=400, detail=f"Formato de arquivo não suportado: {file.filename}")
        content = file.file.read()
        if kind == "pdf":
            parsed = pipeline.parse_pdf(content)
        else:
            parsed = pipeline.parse(content.decode("utf-8", errors="replace"), kind=kind)

        if not save:
            return parsed.to_dict()
        if not x_user_id:
            raise HTTPException(status_code=401, detail="Cabeçalho X-User-Id obrigatório")
        return pipeline.ingest(x_user_id, parsed, custom_category=custom_category).to_dict()

    @app.post("/invoices", status_code=201)
    def create_invoice(
        request: CreateInvoiceRequest,
        user_id: str = Depends(get_user),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> dict:
        parsed = _parse_request(pipeline, request)
        result = pipeline.ingest(
            user_id,
            parsed,
            custom_category=request.custom_category,
            transaction_id=request.transaction_id,
            account_id=request.account_id,
        )
        return result.to_dict()

    @app.get("/invoices")
    def list_invoices(
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        category: Optional[str] = None,
        merchant: Optional[str] = None,
        min_amount: Optional[float] = None,
        max_amount: Optional[float] = None,
        limit: int = Query(25, ge=1, le=100),
        offset: int = Query(0, ge=0),
        user_id: str = Depends(get_user),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> List[dict]:
        invoices = pipeline.list_invoices(
            user_id,
            start_date=start_date,
            end_date=end_date,
            category=category,
            merchant=merchant,
            min_amount=min_amount,
            max_amount=max_amount,
            limit=limit,
            offset=offset,
        )
        return [record_to_json(asdict(invoice)) for invoice in invoices]

    @app.get("/invoices/{invoice_id}")
    def get_invoice(
        invoice_id: str,
        user_id: str = Depends(get_user),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> dict:
        return pipeline.get_invoice(invoice_id, user_id).to_dict()

    @app.patch("/invoices/{invoice_id}")
    def update_invoice(
        invoice_id: str,
        request: UpdateInvoiceRequest,
        user_id: str = Depends(get_user),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> dict:
        invoice = pipeline.update_invoice(
            invoice_id,
            user_id,
            category=request.category,
            custom_category=request.custom_category,
            transaction_id=request.transaction_id,
            account_id=request.account_id,
        )
        return record_to_json(asdict(invoice))

    @app.delete("/invoices/{invoice_id}")
    def delete_invoice(
        invoice_id: str,
        user_id: str = Depends(get_user),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> dict:
        pipeline.delete_invoice(invoice_id, user_id)
        return {"status": "deleted", "invoice_id": invoice_id}

    @app.get("/products")
    def list_products(user_id: str = Depends(get_user), pipeline: InvoicePipeline = Depends(get_pipeline)) -> List[dict]:
        return [_product_json(product) for product in pipeline.list_products(user_id)]

    @app.get("/products/{product_id}/price-history")
    def price_history(
        product_id: str,
        days: int = Query(90, ge=1),
        user_id: str = Depends(get_user),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> dict:
        return pipeline.price_history(user_id, product_id, days)

    @app.get("/products/{product_id}/price-comparison")
    def price_comparison(
        product_id: str,
        days: int = Query(90, ge=1),
        user_id: str = Depends(get_user),
        pipeline: InvoicePipeline = Depends(get_pipeline),
    ) -> dict:
        return pipeline.compare_price(user_id, product_id, days)

    return app


__all__ = ["create_app"]

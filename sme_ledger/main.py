"""
Main FastAPI application - Bộ máy ghi sổ kế toán doanh nghiệp nhỏ và vừa (TT133/2016/TT-BTC).
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sme_ledger import __version__
from sme_ledger.api.routers import accounts, documents, periods, reports
from sme_ledger.application.bookkeeping import get_bookkeeping
from sme_ledger.core.config import configure_logging, get_settings
from sme_ledger.domain.exceptions import (
    AccountingError,
    InsufficientStockError,
    StateError,
    UnbalancedEntryError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan - startup and shutdown events."""
    settings = get_settings()
    configure_logging(settings)
    get_bookkeeping()
    logger.info(f"{settings.project_name} {__version__} started")
    yield


app = FastAPI(
    title="SME Ledger API",
    description="""
## Bộ máy ghi sổ kế toán theo Thông tư 133/2016/TT-BTC

### Tính năng chính:
- **Hệ thống tài khoản**: cây TK suy ra từ mã, chỉ ghi sổ vào TK chi tiết
- **Ghi sổ kép**: hóa đơn, phiếu kho, giao dịch ngân hàng, bảng lương sinh bút toán cân đối Nợ = Có
- **Giá vốn**: bình quân gia quyền di động
- **Thuế**: GTGT theo dòng, TNCN lũy tiến từng phần, BHXH/BHYT/BHTN
- **Báo cáo**: bảng cân đối số phát sinh, kết quả kinh doanh B02-DNN, tổng hợp thuế
- **Khóa sổ**: khóa/mở khóa kỳ kế toán theo tháng

### Nguyên tắc:
- Sổ cái chỉ ghi thêm, hủy chứng từ bằng bút toán đối ứng
- Tham số thuế áp dụng theo ngày chứng từ
    """,
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

settings = get_settings()

app.include_router(accounts.router, prefix=settings.api_v1_prefix)
app.include_router(documents.router, prefix=settings.api_v1_prefix)
app.include_router(reports.router, prefix=settings.api_v1_prefix)
app.include_router(periods.router, prefix=settings.api_v1_prefix)


@app.get("/")
def root():
    return {
        "name": "SME Ledger API",
        "version": __version__,
        "regulation": "Thông tư 133/2016/TT-BTC",
        "docs": "/docs",
        "api": settings.api_v1_prefix,
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "ledger_backend": get_settings().ledger_backend}


@app.exception_handler(UnbalancedEntryError)
async def unbalanced_entry_handler(request: Request, exc: UnbalancedEntryError):
    """Lỗi bảng quy tắc hạch toán - không phải lỗi dữ liệu người dùng."""
    logger.critical(f"Posting contract violation on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content={"code": exc.code, "detail": "Lỗi nội bộ: bút toán không cân đối", "fatal": True}
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    status_code = 404 if exc.code == ValidationError.NOT_FOUND else 422
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(StateError)
async def state_error_handler(request: Request, exc: StateError):
    return JSONResponse(status_code=409, content=exc.to_dict())


@app.exception_handler(InsufficientStockError)
async def insufficient_stock_handler(request: Request, exc: InsufficientStockError):
    return JSONResponse(status_code=409, content=exc.to_dict())


@app.exception_handler(AccountingError)
async def accounting_error_handler(request: Request, exc: AccountingError):
    logger.error(f"Unhandled accounting error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

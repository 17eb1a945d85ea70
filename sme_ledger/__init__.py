"""SME ledger - bộ máy ghi sổ kế toán doanh nghiệp nhỏ và vừa (TT133/2016/TT-BTC)."""

__version__ = "0.1.0"

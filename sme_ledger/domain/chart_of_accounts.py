"""
Chart-of-Accounts Registry - Hệ thống tài khoản kế toán (TT133/2016/TT-BTC).

Cây tài khoản được suy ra từ mã: TK cha là mã bỏ chữ số cuối.
Chỉ TK chi tiết (không có TK con), đang hoạt động mới được ghi sổ.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from .entities import Account, get_level, parent_code_of
from .exceptions import ValidationError
from .value_objects import AccountClass, AccountCode, AccountNature, AccountStatus

logger = logging.getLogger(__name__)

D, C, B = AccountNature.DEBIT, AccountNature.CREDIT, AccountNature.BOTH

# (mã TK, tên TK, tính chất) - danh mục TK doanh nghiệp nhỏ và vừa
TT133_ACCOUNTS: tuple[tuple[str, str, AccountNature], ...] = (
    ("111", "Tiền mặt", D),
    ("1111", "Tiền Việt Nam", D),
    ("1112", "Ngoại tệ", D),
    ("112", "Tiền gửi Ngân hàng", D),
    ("1121", "Tiền Việt Nam", D),
    ("1122", "Ngoại tệ", D),
    ("131", "Phải thu của khách hàng", B),
    ("133", "Thuế GTGT được khấu trừ", D),
    ("1331", "Thuế GTGT được khấu trừ của hàng hóa, dịch vụ", D),
    ("1332", "Thuế GTGT được khấu trừ của TSCĐ", D),
    ("138", "Phải thu khác", D),
    ("1381", "Tài sản thiếu chờ xử lý", D),
    ("1388", "Phải thu khác", D),
    ("141", "Tạm ứng", D),
    ("152", "Nguyên liệu, vật liệu", D),
    ("153", "Công cụ, dụng cụ", D),
    ("154", "Chi phí sản xuất, kinh doanh dở dang", D),
    ("155", "Thành phẩm", D),
    ("156", "Hàng hóa", D),
    ("1561", "Giá mua hàng hóa", D),
    ("1562", "Chi phí thu mua hàng hóa", D),
    ("157", "Hàng gửi đi bán", D),
    ("211", "Tài sản cố định", D),
    ("2111", "TSCĐ hữu hình", D),
    ("2112", "TSCĐ thuê tài chính", D),
    ("2113", "TSCĐ vô hình", D),
    ("2114", "Bất động sản đầu tư", D),
    ("2118", "TSCĐ khác", D),
    ("214", "Hao mòn tài sản cố định", C),
    ("2141", "Hao mòn TSCĐ hữu hình", C),
    ("2142", "Hao mòn TSCĐ thuê tài chính", C),
    ("2143", "Hao mòn TSCĐ vô hình", C),
    ("242", "Chi phí trả trước", D),
    ("243", "Tài sản thuế thu nhập hoãn lại", D),
    ("331", "Phải trả cho người bán", B),
    ("333", "Thuế và các khoản phải nộp Nhà nước", C),
    ("3331", "Thuế giá trị gia tăng phải nộp", C),
    ("33311", "Thuế GTGT đầu ra", C),
    ("3334", "Thuế thu nhập doanh nghiệp", C),
    ("3335", "Thuế thu nhập cá nhân", C),
    ("3338", "Thuế khác", C),
    ("334", "Phải trả người lao động", C),
    ("338", "Phải trả, phải nộp khác", C),
    ("3381", "Tài sản thừa chờ giải quyết", C),
    ("3382", "Kinh phí công đoàn", C),
    ("3383", "Bảo hiểm xã hội", C),
    ("3384", "Bảo hiểm y tế", C),
    ("3386", "Bảo hiểm thất nghiệp", C),
    ("3388", "Phải trả, phải nộp khác", C),
    ("341", "Vay và nợ thuê tài chính", C),
    ("3411", "Các khoản đi vay", C),
    ("3412", "Nợ thuê tài chính", C),
    ("352", "Dự phòng phải trả", C),
    ("353", "Quỹ khen thưởng, phúc lợi", C),
    ("3531", "Quỹ khen thưởng", C),
    ("3532", "Quỹ phúc lợi", C),
    ("411", "Vốn đầu tư của chủ sở hữu", C),
    ("418", "Các quỹ thuộc vốn chủ sở hữu", C),
    ("421", "Lợi nhuận sau thuế chưa phân phối", B),
    ("4211", "Lợi nhuận sau thuế chưa phân phối năm trước", B),
    ("4212", "Lợi nhuận sau thuế chưa phân phối năm nay", B),
    ("511", "Doanh thu bán hàng và cung cấp dịch vụ", C),
    ("5111", "Doanh thu bán hàng hóa", C),
    ("5112", "Doanh thu bán thành phẩm", C),
    ("5113", "Doanh thu cung cấp dịch vụ", C),
    ("5118", "Doanh thu khác", C),
    ("515", "Doanh thu hoạt động tài chính", C),
    ("521", "Các khoản giảm trừ doanh thu", D),
    ("5211", "Chiết khấu thương mại", D),
    ("5212", "Hàng bán bị trả lại", D),
    ("5213", "Giảm giá hàng bán", D),
    ("611", "Mua hàng", D),
    ("632", "Giá vốn hàng bán", D),
    ("635", "Chi phí tài chính", D),
    ("6351", "Chi phí lãi vay", D),
    ("6352", "Chi phí tài chính khác", D),
    ("642", "Chi phí quản lý kinh doanh", D),
    ("6421", "Chi phí nhân viên quản lý", D),
    ("6422", "Chi phí vật liệu quản lý", D),
    ("6423", "Chi phí đồ dùng văn phòng", D),
    ("6424", "Chi phí khấu hao TSCĐ", D),
    ("6425", "Thuế, phí và lệ phí", D),
    ("6426", "Chi phí dự phòng", D),
    ("6427", "Chi phí dịch vụ mua ngoài", D),
    ("6428", "Chi phí bằng tiền khác", D),
    ("711", "Thu nhập khác", C),
    ("811", "Chi phí khác", D),
    ("821", "Chi phí thuế thu nhập doanh nghiệp", D),
    ("8211", "Chi phí thuế TNDN hiện hành", D),
    ("8212", "Chi phí thuế TNDN hoãn lại", D),
)


def validate_code(code: str) -> None:
    if not code or not code.isdigit() or not 3 <= len(code) <= 5 or code[0] not in "12345678":
        raise ValidationError(
            f"Mã tài khoản không hợp lệ: {code!r} (3-5 chữ số, bắt đầu bằng 1-8)",
            code=ValidationError.INVALID_CODE,
        )


class ChartOfAccountsRegistry:
    """
    Registry - Danh mục tài khoản.

    Đảm bảo: TK con có mã là phần mở rộng đúng một chữ số của TK cha,
    TK hệ thống không được sửa/xóa, TK có TK con hoặc đã phát sinh
    không được xóa.
    """

    def __init__(
        self,
        accounts: Iterable[Account] = (),
        postings_lookup: Callable[[str], bool] | None = None,
    ):
        self._accounts: dict[str, Account] = {}
        self._posted_codes: set[str] = set()
        self._postings_lookup = postings_lookup
        self._lock = threading.RLock()
        for account in accounts:
            self._accounts[account.code] = account

    @classmethod
    def with_default_chart(
        cls, postings_lookup: Callable[[str], bool] | None = None
    ) -> "ChartOfAccountsRegistry":
        """Khởi tạo danh mục TK theo TT133/2016, các TK mặc định là TK hệ thống."""
        registry = cls()
        for code, name, nature in TT133_ACCOUNTS:
            registry.register(code, name, nature=nature, is_system=True)
        registry.bind_postings_lookup(postings_lookup)
        return registry

    def bind_postings_lookup(self, lookup: Callable[[str], bool] | None) -> None:
        """Tra cứu phát sinh từ sổ cái, vd. `journal_repo.has_postings`."""
        with self._lock:
            self._postings_lookup = lookup

    @contextmanager
    def posting_guard(self) -> Iterator[None]:
        """Giữ khóa danh mục trong suốt lúc kiểm tra TK và ghi sổ."""
        with self._lock:
            yield

    def register(
        self,
        code: str,
        name: str,
        parent_code: str | None = None,
        nature: AccountNature = AccountNature.DEBIT,
        detail_required: bool = False,
        is_system: bool = False,
        name_en: str | None = None,
    ) -> Account:
        validate_code(code)
        if not name or not name.strip():
            raise ValidationError("Tên tài khoản là bắt buộc", code=ValidationError.MISSING_FIELD)

        with self._lock:
            if code in self._accounts:
                raise ValidationError(
                    f"Mã tài khoản {code} đã tồn tại", code=ValidationError.DUPLICATE_CODE
                )

            derived_parent = parent_code_of(code)
            if parent_code is not None:
                if parent_code not in self._accounts:
                    raise ValidationError(
                        f"Không tìm thấy TK cha {parent_code}",
                        code=ValidationError.PARENT_NOT_FOUND,
                    )
                if derived_parent != parent_code:
                    raise ValidationError(
                        f"TK {code} phải bắt đầu bằng TK cha {parent_code} "
                        f"và dài hơn đúng 1 chữ số",
                        code=ValidationError.PARENT_MISMATCH,
                    )
            elif derived_parent is not None and derived_parent not in self._accounts:
                raise ValidationError(
                    f"Không tìm thấy TK cha {derived_parent} của TK {code}",
                    code=ValidationError.PARENT_NOT_FOUND,
                )

            if derived_parent is not None and self.has_postings(derived_parent):
                raise ValidationError(
                    f"TK {derived_parent} đã phát sinh bút toán, không thể mở TK con",
                    code=ValidationError.HAS_POSTINGS,
                )

            account = Account(
                code=AccountCode(code),
                name=name.strip(),
                nature=AccountNature(nature),
                status=AccountStatus.SYSTEM if is_system else AccountStatus.ACTIVE,
                detail_required=detail_required,
                name_en=name_en,
            )
            self._accounts[code] = account

        if not is_system:
            logger.info(f"Registered account {code} - {account.name}")
        return account

    def lookup(self, code: str) -> Account:
        account = self._accounts.get(code)
        if account is None:
            raise ValidationError(
                f"Không tìm thấy tài khoản {code}", code=ValidationError.NOT_FOUND
            )
        return account

    def exists(self, code: str) -> bool:
        return code in self._accounts

    def children(self, code: str) -> list[Account]:
        """TK con trực tiếp (dài hơn đúng 1 chữ số, cùng tiền tố)."""
        self.lookup(code)
        with self._lock:
            return sorted(
                (a for a in self._accounts.values() if parent_code_of(a.code) == code),
                key=lambda a: a.code,
            )

    def is_parent(self, code: str) -> bool:
        with self._lock:
            return any(parent_code_of(other) == code for other in self._accounts)

    def ancestors(self, code: str) -> list[str]:
        result = []
        parent = parent_code_of(code)
        while parent is not None:
            result.append(parent)
            parent = parent_code_of(parent)
        return result

    def accounts(
        self,
        account_class: AccountClass | None = None,
        status: AccountStatus | None = None,
    ) -> list[Account]:
        with self._lock:
            result = sorted(self._accounts.values(), key=lambda a: a.code)
        if account_class is not None:
            result = [a for a in result if a.account_class == account_class]
        if status is not None:
            result = [a for a in result if a.status == status]
        return result

    def has_postings(self, code: str) -> bool:
        if code in self._posted_codes:
            return True
        lookup = self._postings_lookup
        if lookup is not None and lookup(code):
            self._posted_codes.add(code)
            return True
        return False

    def record_postings(self, codes: Iterable[str]) -> None:
        with self._lock:
            self._posted_codes.update(codes)

    def update(
        self,
        code: str,
        name: str | None = None,
        nature: AccountNature | None = None,
        detail_required: bool | None = None,
    ) -> Account:
        """Sửa thông tin TK. TK hệ thống không được sửa."""
        with self._lock:
            account = self.lookup(code)
            if account.is_system:
                raise ValidationError(
                    f"TK {code} là TK hệ thống, không được sửa",
                    code=ValidationError.IS_SYSTEM_ACCOUNT,
                )
            changes = {}
            if name is not None:
                if not name.strip():
                    raise ValidationError(
                        "Tên tài khoản là bắt buộc", code=ValidationError.MISSING_FIELD
                    )
                changes["name"] = name.strip()
            if nature is not None:
                changes["nature"] = AccountNature(nature)
            if detail_required is not None:
                changes["detail_required"] = detail_required
            for attr, value in changes.items():
                setattr(account, attr, value)
            account.version += 1
        logger.info(f"Updated account {code}: {sorted(changes)}")
        return account

    def deactivate(self, code: str) -> Account:
        """Ngừng sử dụng TK (xóa mềm)."""
        with self._lock:
            account = self.lookup(code)
            if account.is_system:
                raise ValidationError(
                    f"TK {code} là TK hệ thống, không được xóa",
                    code=ValidationError.IS_SYSTEM_ACCOUNT,
                )
            if self.is_parent(code):
                raise ValidationError(
                    f"TK {code} đang có TK con, không được xóa",
                    code=ValidationError.HAS_CHILDREN,
                )
            if self.has_postings(code):
                raise ValidationError(
                    f"TK {code} đã phát sinh bút toán, không được xóa",
                    code=ValidationError.HAS_POSTINGS,
                )
            account = account.deactivate()
            self._accounts[code] = account
        logger.info(f"Deactivated account {code}")
        return account

    def validate_for_posting(self, code: str) -> Account:
        """Chỉ TK chi tiết đang hoạt động mới được ghi sổ."""
        with self._lock:
            account = self.lookup(code)
            if not account.is_active:
                raise ValidationError(
                    f"TK {code} đã ngừng sử dụng", code=ValidationError.INACTIVE
                )
            if self.is_parent(code):
                raise ValidationError(
                    f"TK {code} là TK tổng hợp, chỉ được ghi sổ vào TK chi tiết",
                    code=ValidationError.IS_PARENT,
                )
        return account

    @staticmethod
    def get_level(code: str) -> int:
        return get_level(code)

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, code: object) -> bool:
        return code in self._accounts

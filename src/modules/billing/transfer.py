"""Manual bank transfer instructions used when hosted checkout is unavailable."""

from dataclasses import asdict, dataclass
from urllib.parse import urlencode

from src.utils.settings.billing import BillingSettings


@dataclass(frozen=True)
class TransferInstructions:
    account_number: str
    account_name: str
    bank_name: str
    amount: int
    content: str

    def to_dict(self) -> dict:
        return asdict(self)


def transfer_reference(user_key: str, payment_id: str) -> str:
    """Human traceable, not unique: last 8 chars of key and payment id."""
    return f"NAPCREDIT {user_key[-8:]} {payment_id[-8:]}"


def build_instructions(
    amount: int, content: str, settings: BillingSettings | None = None
) -> TransferInstructions:
    settings = settings or BillingSettings()
    return TransferInstructions(
        account_number=settings.BANK_ACCOUNT_NUMBER,
        account_name=settings.BANK_ACCOUNT_NAME,
        bank_name=settings.BANK_NAME,
        amount=amount,
        content=content,
    )


def manual_payment_url(
    instructions: TransferInstructions, settings: BillingSettings | None = None
) -> str:
    settings = settings or BillingSettings()
    query = urlencode(
        {
            "amount": instructions.amount,
            "content": instructions.content,
            "account": instructions.account_number,
            "bank": instructions.bank_name,
        }
    )
    return f"{settings.MANUAL_PAYMENT_URL}?{query}"


def qr_payload(instructions: TransferInstructions) -> str:
    return "|".join(
        [
            "2",
            "010",
            instructions.account_number,
            instructions.account_name,
            instructions.bank_name,
            str(instructions.amount),
            instructions.content,
            "VN",
        ]
    )

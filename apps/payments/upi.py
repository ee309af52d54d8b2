"""
UPI Deep Link Module
====================

Builds ``upi://pay`` deep links and validates the payment form that feeds
them. Everything here is a pure transformation except ``generate_qr_image``,
which renders a link for desktop browsers where no UPI app can open it.

The link always carries exactly four parameters in a fixed order::

    upi://pay?pa=<payee id>&pn=<payee name>&am=<amount>&cu=INR

Some UPI apps reject links with extra parameters (``tn``, ``mc``, ``tr``),
and some reject non-ASCII characters in ``pn``, so neither is ever emitted.

Example:
    Build a link from form input::

        from apps.payments.upi import build_upi_link

        link = build_upi_link('chaiwala@okaxis', '250.5', 'Raju Chai')
        # "upi://pay?pa=chaiwala%40okaxis&pn=Raju%20Chai&am=250.50&cu=INR"
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Mapping, Optional, Union
from urllib.parse import quote

from .exceptions import UpiValidationError

UPI_SCHEME = 'upi://pay'
UPI_CURRENCY = 'INR'
FALLBACK_PAYEE_NAME = 'UPI Payment'

UPI_ID_PATTERN = re.compile(r'^[\w.\-]{2,}@[a-zA-Z]{2,10}$', re.ASCII)

_PAYEE_NAME_STRIP = re.compile(r'[^a-zA-Z0-9 ]')

# encodeURIComponent leaves these unescaped
_URI_COMPONENT_SAFE = "-_.!~*'()"

CENT = Decimal('0.01')


def validate_upi_id(upi_id: str) -> str:
    """
    Validate a UPI id of the form ``<local-part>@<handle>``.

    The local part is at least 2 word, dot or hyphen characters; the handle
    is 2-10 ASCII letters.

    Returns:
        The id with surrounding whitespace removed.

    Raises:
        UpiValidationError: If the id does not match.
    """
    value = (upi_id or '').strip()
    if not UPI_ID_PATTERN.match(value):
        raise UpiValidationError('Invalid UPI ID format. Example: name@upi')
    return value


def parse_amount(value: Union[str, int, float, Decimal]) -> Decimal:
    """
    Parse an amount into a positive Decimal rounded to 2 places.

    Raises:
        UpiValidationError: If the value is not a positive finite number.
    """
    if isinstance(value, bool) or value is None:
        raise UpiValidationError('Please enter a valid amount.')

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise UpiValidationError('Please enter a valid amount.')

    if not amount.is_finite():
        raise UpiValidationError('Please enter a valid amount.')

    try:
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits for the decimal context, e.g. '1e26'
        raise UpiValidationError('Please enter a valid amount.')

    if amount <= 0:
        raise UpiValidationError('Amount must be greater than zero.')
    return amount


def format_amount(value: Union[str, int, float, Decimal]) -> str:
    """Format an amount with exactly 2 decimal places, e.g. ``'250.50'``."""
    return f'{parse_amount(value):.2f}'


def sanitize_payee_name(name: str) -> str:
    """
    Strip everything but ASCII letters, digits and spaces, then trim.

    Idempotent. May return an empty string; see ``resolve_payee_name``
    for the fallback.
    """
    return _PAYEE_NAME_STRIP.sub('', name or '').strip()


def resolve_payee_name(upi_id: str, payee_name: Optional[str] = None) -> str:
    """
    Pick the ``pn`` value for a link.

    Uses the given name, or the local part of the UPI id when no name is
    given, sanitized. Falls back to ``FALLBACK_PAYEE_NAME`` when nothing
    survives sanitizing.
    """
    raw = (payee_name or '').strip() or upi_id.split('@', 1)[0]
    return sanitize_payee_name(raw) or FALLBACK_PAYEE_NAME


def build_upi_link(
    upi_id: str,
    amount: Union[str, int, float, Decimal],
    payee_name: Optional[str] = None
) -> str:
    """
    Build a ``upi://pay`` deep link.

    Args:
        upi_id: Payee UPI id (``pa``)
        amount: Positive amount (``am``), formatted to 2 decimal places
        payee_name: Display name (``pn``); derived from the UPI id if empty

    Returns:
        The deep link with ``pa``, ``pn``, ``am`` and ``cu`` in that order.

    Raises:
        UpiValidationError: If the UPI id or amount is invalid.
    """
    pa = validate_upi_id(upi_id)
    am = format_amount(amount)
    pn = resolve_payee_name(pa, payee_name)

    return (
        f'{UPI_SCHEME}'
        f'?pa={quote(pa, safe=_URI_COMPONENT_SAFE)}'
        f'&pn={quote(pn, safe=_URI_COMPONENT_SAFE)}'
        f'&am={am}'
        f'&cu={UPI_CURRENCY}'
    )


def generate_qr_image(link: str, output_path: Optional[str] = None):
    """
    Render a deep link as a QR code.

    Args:
        link: Deep link from ``build_upi_link``
        output_path: If given, the PNG is saved there and the path returned

    Returns:
        PIL.Image.Image | str: The image, or ``output_path`` when saving.

    Note:
        Error correction level M keeps the code small enough for phone
        cameras at typical screen sizes.
    """
    import qrcode

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(link)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    if output_path:
        img.save(output_path)
        return output_path

    return img


@dataclass(frozen=True)
class ScannedPayee:
    """Result of scanning a UPI QR code: payee id and optional name."""

    pa: str
    pn: str = ''

    @classmethod
    def from_mapping(cls, data: Mapping[str, str]) -> 'ScannedPayee':
        """
        Build from the scanner's ``{pa, pn}`` output.

        Raises:
            UpiValidationError: If the scan carried no payee id.
        """
        pa = (data.get('pa') or '').strip() if data else ''
        if not pa:
            raise UpiValidationError('Could not read a UPI ID from this QR code.')
        return cls(pa=pa, pn=(data.get('pn') or '').strip())


@dataclass(frozen=True)
class PaymentRequest:
    """A validated payment: everything needed to initiate and redirect."""

    upi_id: str
    payee_name: str
    amount: str
    category: str
    description: str

    @property
    def payload(self) -> dict:
        """Body of the initiate call."""
        return {
            'amount': self.amount,
            'category': self.category,
            'description': self.description,
        }

    @property
    def link(self) -> str:
        return build_upi_link(self.upi_id, self.amount, self.payee_name)


@dataclass
class PaymentForm:
    """
    Raw payment form input, as typed or pre-filled from a QR scan.

    Call ``validate()`` before anything touches the network.
    """

    upi_id: str = ''
    amount: Union[str, int, float, Decimal] = ''
    category: str = ''
    payee_name: str = ''
    description: str = ''

    @classmethod
    def from_scan(
        cls,
        scan: ScannedPayee,
        *,
        amount: Union[str, int, float, Decimal] = '',
        category: str = '',
        description: str = ''
    ) -> 'PaymentForm':
        return cls(
            upi_id=scan.pa,
            amount=amount,
            category=category,
            payee_name=scan.pn,
            description=description,
        )

    def validate(self) -> PaymentRequest:
        """
        Validate the form.

        An empty description defaults to ``"UPI to <upi id>"``.

        Raises:
            UpiValidationError: If a required field is missing, the UPI id
                is malformed or the amount is not positive.
        """
        upi_id = (self.upi_id or '').strip()
        category = (self.category or '').strip()
        amount = self.amount.strip() if isinstance(self.amount, str) else self.amount

        if not upi_id or amount in ('', None) or not category:
            raise UpiValidationError('UPI ID, amount, and category are required.')

        upi_id = validate_upi_id(upi_id)
        formatted = format_amount(amount)

        return PaymentRequest(
            upi_id=upi_id,
            payee_name=resolve_payee_name(upi_id, self.payee_name),
            amount=formatted,
            category=category,
            description=(self.description or '').strip() or f'UPI to {upi_id}',
        )

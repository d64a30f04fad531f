"""
Barcode codec -- encode, decode and spec-validate panel barcodes.

Responsibility:
    Pure mapping between a panel's attributes plus its per-order sequence
    number and the fixed-width barcode printed on the panel:

        CRS <YY> <frame> <backsheet> <cells> <sequence:05d>
        CRS  25     W        T         36       00005

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Round trip: parse(construct(spec)) reproduces spec.
    - Frame codes SILVER->W, BLACK->B; backsheet codes TRANSPARENT->T,
      WHITE->W, BLACK->B.  'W' appears in both positions; only the position
      tells them apart.
    - Sequence field is exactly five digits.

Failure modes:
    - InvalidBarcodeError from parse() on any string outside the grammar.
    - SequenceOverflowError from construct() when the sequence is < 1 or
      does not fit five digits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from mo_kernel.domain.order_spec import BacksheetType, FrameType, PanelType
from mo_kernel.exceptions import InvalidBarcodeError, SequenceOverflowError

BARCODE_PREFIX = "CRS"
SEQUENCE_DIGITS = 5
MAX_SEQUENCE_NUMBER = 10**SEQUENCE_DIGITS - 1

BARCODE_PATTERN = re.compile(
    r"^CRS(\d{2})([WB])([TWB])(36|40|60|72|144)(\d{5})$"
)

FRAME_CODES: dict[FrameType, str] = {
    FrameType.SILVER: "W",
    FrameType.BLACK: "B",
}

BACKSHEET_CODES: dict[BacksheetType, str] = {
    BacksheetType.TRANSPARENT: "T",
    BacksheetType.WHITE: "W",
    BacksheetType.BLACK: "B",
}

_FRAME_BY_CODE = {code: frame for frame, code in FRAME_CODES.items()}
_BACKSHEET_BY_CODE = {code: sheet for sheet, code in BACKSHEET_CODES.items()}


@dataclass(frozen=True)
class BarcodeSpec:
    """Everything needed to mint one barcode."""

    year_code: str
    frame_type: FrameType
    backsheet_type: BacksheetType
    panel_type: PanelType
    sequence_number: int


@dataclass(frozen=True)
class BarcodeComponents:
    """Fields decoded from a barcode string."""

    barcode: str
    year_code: str
    frame_code: str
    backsheet_code: str
    panel_type: PanelType
    sequence_number: int

    @property
    def frame_type(self) -> FrameType:
        return _FRAME_BY_CODE[self.frame_code]

    @property
    def backsheet_type(self) -> BacksheetType:
        return _BACKSHEET_BY_CODE[self.backsheet_code]

    def to_spec(self) -> BarcodeSpec:
        return BarcodeSpec(
            year_code=self.year_code,
            frame_type=self.frame_type,
            backsheet_type=self.backsheet_type,
            panel_type=self.panel_type,
            sequence_number=self.sequence_number,
        )


@dataclass(frozen=True)
class SpecValidation:
    """Outcome of comparing decoded components with an order's attributes."""

    is_valid: bool
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class BarcodeRange:
    """Preview of the sequence window reserved for an order at creation."""

    start: int
    end: int
    total: int
    first_barcode: str
    last_barcode: str
    samples: tuple[str, ...] = field(default_factory=tuple)


def construct(spec: BarcodeSpec) -> str:
    """Build the barcode string for ``spec``."""
    seq = spec.sequence_number
    if seq < 1 or seq > MAX_SEQUENCE_NUMBER:
        raise SequenceOverflowError(seq)
    return (
        f"{BARCODE_PREFIX}{spec.year_code}"
        f"{FRAME_CODES[FrameType(spec.frame_type)]}"
        f"{BACKSHEET_CODES[BacksheetType(spec.backsheet_type)]}"
        f"{PanelType(spec.panel_type).cell_count}"
        f"{seq:0{SEQUENCE_DIGITS}d}"
    )


def parse(barcode: str) -> BarcodeComponents:
    """Decode ``barcode``; raises InvalidBarcodeError if it is malformed."""
    if not isinstance(barcode, str):
        raise InvalidBarcodeError(barcode, "barcode must be a string")
    match = BARCODE_PATTERN.match(barcode)
    if match is None:
        raise InvalidBarcodeError(barcode)
    year, frame_code, backsheet_code, cells, seq = match.groups()
    return BarcodeComponents(
        barcode=barcode,
        year_code=year,
        frame_code=frame_code,
        backsheet_code=backsheet_code,
        panel_type=PanelType.from_cell_count(cells),
        sequence_number=int(seq),
    )


def is_valid_format(barcode: str) -> bool:
    return isinstance(barcode, str) and BARCODE_PATTERN.match(barcode) is not None


def validate_against_spec(
    components: BarcodeComponents,
    *,
    year_code: str,
    panel_type: PanelType,
    frame_type: FrameType,
    backsheet_type: BacksheetType,
) -> SpecValidation:
    """
    Compare decoded components with an order's attributes.

    Every mismatch is reported; the check does not stop at the first one.
    """
    errors: list[str] = []

    if components.year_code != year_code:
        errors.append(
            f"Year code mismatch: barcode {components.year_code}, order {year_code}"
        )

    expected_panel = PanelType(panel_type)
    if components.panel_type != expected_panel:
        errors.append(
            f"Panel type mismatch: barcode {components.panel_type.cell_count}, "
            f"order {expected_panel.cell_count}"
        )

    expected_frame = FRAME_CODES[FrameType(frame_type)]
    if components.frame_code != expected_frame:
        errors.append(
            f"Frame type mismatch: barcode {components.frame_code}, "
            f"order {expected_frame} ({FrameType(frame_type).value})"
        )

    expected_backsheet = BACKSHEET_CODES[BacksheetType(backsheet_type)]
    if components.backsheet_code != expected_backsheet:
        errors.append(
            f"Backsheet type mismatch: barcode {components.backsheet_code}, "
            f"order {expected_backsheet} ({BacksheetType(backsheet_type).value})"
        )

    return SpecValidation(is_valid=not errors, errors=tuple(errors))


def barcode_range(
    *,
    start: int,
    target_quantity: int,
    year_code: str,
    panel_type: PanelType,
    frame_type: FrameType,
    backsheet_type: BacksheetType,
) -> BarcodeRange:
    """
    Describe the window ``[start, start + target - 1]`` with sample barcodes.

    Samples are the first, quartile and last positions, deduplicated and in
    order.  Positions past the 5-digit limit are left out of the samples.
    """
    end = start + target_quantity - 1

    def _make(seq: int) -> str:
        return construct(BarcodeSpec(
            year_code=year_code,
            frame_type=frame_type,
            backsheet_type=backsheet_type,
            panel_type=panel_type,
            sequence_number=seq,
        ))

    offsets = [
        0,
        target_quantity // 4,
        target_quantity // 2,
        (3 * target_quantity) // 4,
        target_quantity - 1,
    ]
    sample_seqs: list[int] = []
    for offset in offsets:
        seq = start + offset
        if seq <= end and seq <= MAX_SEQUENCE_NUMBER and seq not in sample_seqs:
            sample_seqs.append(seq)

    samples = tuple(_make(seq) for seq in sample_seqs)
    return BarcodeRange(
        start=start,
        end=end,
        total=target_quantity,
        first_barcode=samples[0] if samples else "",
        last_barcode=_make(end) if end <= MAX_SEQUENCE_NUMBER else "",
        samples=samples,
    )

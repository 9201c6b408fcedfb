"""
Pricing Engine - pure line and subtotal computation

No I/O happens here: callers hand in catalog snapshots (product price, option
groups) plus the customer's choice ids in the order they were picked, and get
back an itemized quote.
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from delivery_service.exceptions import InvalidOptionSelection, MissingRequiredSelection
from delivery_service.models.catalog import SelectionType

CENT = Decimal("0.01")
HALF = Decimal("0.5")
HALF_HALF_SLOTS = 2


def to_money(value) -> Decimal:
    """Round to cents, half-up"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ChoiceSpec:
    id: str
    name: str
    price_delta: Decimal


@dataclass(frozen=True)
class GroupSpec:
    id: str
    name: str
    selection_type: SelectionType
    choices: Sequence[ChoiceSpec]
    is_required: bool = False
    min_selections: int = 0
    max_selections: Optional[int] = None
    
    @property
    def required_minimum(self) -> int:
        if not self.is_required:
            return 0
        return max(1, self.min_selections)


@dataclass(frozen=True)
class AppliedOption:
    group: str
    name: str
    price_delta: Decimal  # delta actually charged per unit (halved for half_half)
    
    def as_dict(self) -> dict:
        return {"group": self.group, "name": self.name, "price_delta": str(self.price_delta)}


@dataclass(frozen=True)
class LineQuote:
    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    options: List[AppliedOption]
    unit_total: Decimal
    line_total: Decimal


@dataclass
class Quote:
    lines: List[LineQuote] = field(default_factory=list)
    
    @property
    def subtotal(self) -> Decimal:
        return to_money(sum((line.line_total for line in self.lines), Decimal("0")))


def push_half_half(selected: List[str], choice_id: str) -> List[str]:
    """
    Add a flavor to a half-and-half selection.
    
    The selection is a FIFO buffer of two: picking a third flavor evicts the
    oldest one. Re-picking an already selected flavor is a no-op.
    """
    if choice_id in selected:
        return list(selected)
    buffer = list(selected) + [choice_id]
    return buffer[-HALF_HALF_SLOTS:]


def _selected_per_group(groups: Sequence[GroupSpec], selections: Iterable[str]) -> Dict[str, List[ChoiceSpec]]:
    owner = {}
    for group in groups:
        for choice in group.choices:
            owner[choice.id] = (group, choice)
    
    picked: Dict[str, List[str]] = {group.id: [] for group in groups}
    for choice_id in selections:
        if choice_id not in owner:
            raise InvalidOptionSelection(f"Choice {choice_id} does not belong to this product")
        group, _ = owner[choice_id]
        current = picked[group.id]
        if group.selection_type == SelectionType.HALF_HALF:
            picked[group.id] = push_half_half(current, choice_id)
        elif choice_id in current:
            raise InvalidOptionSelection(f"Choice {choice_id} selected twice in group '{group.name}'")
        else:
            current.append(choice_id)
    
    return {
        group_id: [owner[choice_id][1] for choice_id in choice_ids]
        for group_id, choice_ids in picked.items()
    }


def _check_group(group: GroupSpec, chosen: List[ChoiceSpec]) -> None:
    count = len(chosen)
    if count < group.required_minimum:
        raise MissingRequiredSelection(
            f"Group '{group.name}' requires at least {group.required_minimum} selection(s)"
        )
    if count == 0:
        return
    
    if group.selection_type == SelectionType.SINGLE and count > 1:
        raise InvalidOptionSelection(f"Group '{group.name}' accepts a single choice")
    
    if group.selection_type == SelectionType.MULTIPLE:
        if count < group.min_selections:
            raise InvalidOptionSelection(
                f"Group '{group.name}' needs at least {group.min_selections} selections, got {count}"
            )
        if group.max_selections is not None and count > group.max_selections:
            raise InvalidOptionSelection(
                f"Group '{group.name}' allows at most {group.max_selections} selections, got {count}"
            )


def _applied_deltas(group: GroupSpec, chosen: List[ChoiceSpec]) -> List[AppliedOption]:
    # Two halves each contribute half their delta; a lone flavor is a whole item.
    factor = HALF if group.selection_type == SelectionType.HALF_HALF and len(chosen) == HALF_HALF_SLOTS else 1
    return [
        AppliedOption(group=group.name, name=choice.name, price_delta=Decimal(choice.price_delta) * factor)
        for choice in chosen
    ]


def price_line(
    product_id: str,
    product_name: str,
    base_price,
    groups: Sequence[GroupSpec],
    selections: Sequence[str],
    quantity: int,
) -> LineQuote:
    """
    Price one cart line.
    
    Args:
        base_price: Product price snapshot
        groups: Option groups of the product
        selections: Choice ids in the order the customer picked them
        quantity: Units, at least 1
    
    Raises:
        InvalidOptionSelection: Unknown choice or group count rules violated
        MissingRequiredSelection: A required group is under its minimum
    """
    if quantity < 1:
        raise InvalidOptionSelection("Quantity must be at least 1")
    
    chosen_by_group = _selected_per_group(groups, selections)
    applied: List[AppliedOption] = []
    for group in groups:
        chosen = chosen_by_group[group.id]
        _check_group(group, chosen)
        applied.extend(_applied_deltas(group, chosen))
    
    unit_total = Decimal(str(base_price)) + sum((option.price_delta for option in applied), Decimal("0"))
    if unit_total < 0:
        raise InvalidOptionSelection(f"Options bring the price of '{product_name}' below zero")
    
    # line_total is always the rounded unit_total times quantity
    unit_total = to_money(unit_total)
    return LineQuote(
        product_id=product_id,
        product_name=product_name,
        unit_price=to_money(base_price),
        quantity=quantity,
        options=applied,
        unit_total=unit_total,
        line_total=unit_total * quantity,
    )


def price_order(lines: Iterable[LineQuote]) -> Quote:
    """Collect priced lines; the quote's subtotal feeds the coupon validator"""
    return Quote(lines=list(lines))

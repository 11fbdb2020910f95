"""Deduction lookup and amount resolution."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from workorder_payroll.models import DeductionType, DeductionWageRange

logger = logging.getLogger(__name__)

CALCULATION_TYPES = ("flat", "percentage", "wage_bracket")
ROUNDING_METHODS = ("round", "ceil")
RANGE_METHODS = ("fixed", "percentage")

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class BracketLookupError(Exception):
    """Raised when no wage range covers a gross wage."""

    def __init__(self, code: str, gross_wage: Decimal):
        self.code = code
        self.gross_wage = gross_wage
        super().__init__(
            f"No wage range of deduction '{code}' covers gross wage {gross_wage}"
        )


class DeductionConfigurationError(Exception):
    """Raised when deduction rules are inconsistent."""

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(message)


@dataclass(frozen=True)
class DeductionAmount:
    """Worker and employer share of one deduction."""

    worker: Decimal
    employer: Decimal


@dataclass(frozen=True)
class WageBracket:
    """Input row for ``DeductionCatalog.set_wage_ranges``."""

    min_wage: Decimal
    max_wage: Decimal | None
    worker_amount: Decimal = Decimal("0")
    employer_amount: Decimal = Decimal("0")
    calculation_method: str = "fixed"
    worker_percentage: Decimal = Decimal("0")
    employer_percentage: Decimal = Decimal("0")


def _round(value: Decimal, precision: int, method: str) -> Decimal:
    quantum = Decimal(1).scaleb(-precision)
    rounding = ROUND_CEILING if method == "ceil" else ROUND_HALF_UP
    return value.quantize(quantum, rounding=rounding)


class DeductionCatalog:
    """Reads the deduction rules in force and prices them against a wage.

    Rule selection:
    1. ``is_active`` and the effective window covers ``as_of``
    2. Nationality scope is unset, ``all`` or the worker's nationality
    3. At most one row per code may survive; two is a configuration error

    The catalog only reads during pay processing. The administrative
    methods (``add_deduction_type``, ``supersede``, ``set_wage_ranges``)
    flush but leave the commit to the caller.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_deductions(
        self,
        as_of: date | None = None,
        nationality: str | None = None,
    ) -> list[DeductionType]:
        """Get deduction rules effective on a date, ordered by id.

        Args:
            as_of: Effective date (defaults to today)
            nationality: Worker nationality; ``None`` returns unscoped rules only

        Raises:
            DeductionConfigurationError: If two rows of one code are effective
        """
        as_of = as_of or date.today()
        result = await self.session.execute(
            select(DeductionType)
            .where(
                DeductionType.is_active.is_(True),
                DeductionType.effective_from <= as_of,
                or_(
                    DeductionType.effective_until.is_(None),
                    DeductionType.effective_until >= as_of,
                ),
            )
            .order_by(DeductionType.id)
        )
        rules = [rule for rule in result.scalars().all() if rule.applies_to(nationality)]

        seen: set[str] = set()
        for rule in rules:
            if rule.code in seen:
                raise DeductionConfigurationError(
                    f"More than one deduction type with code '{rule.code}' is effective on {as_of}",
                    code=rule.code,
                )
            seen.add(rule.code)
        return rules

    def resolve_amount(
        self,
        deduction_type: DeductionType,
        gross_wage: Decimal,
    ) -> DeductionAmount:
        """Price one deduction rule against a gross wage.

        Raises:
            BracketLookupError: If a wage-bracket rule has no covering range
            DeductionConfigurationError: If the rule's calculation type is unknown
        """
        calculation_type = deduction_type.calculation_type

        if calculation_type == "flat":
            return DeductionAmount(
                worker=Decimal(deduction_type.worker_amount),
                employer=Decimal(deduction_type.employer_amount),
            )

        if calculation_type == "percentage":
            precision = deduction_type.rounding_precision
            method = deduction_type.rounding_method
            return DeductionAmount(
                worker=_round(gross_wage * deduction_type.worker_amount / HUNDRED, precision, method),
                employer=_round(
                    gross_wage * deduction_type.employer_amount / HUNDRED, precision, method
                ),
            )

        if calculation_type == "wage_bracket":
            wage_range = self.find_wage_range(deduction_type, gross_wage)
            if wage_range.calculation_method == "percentage":
                return DeductionAmount(
                    worker=_round(gross_wage * wage_range.worker_percentage / HUNDRED, 2, "round"),
                    employer=_round(
                        gross_wage * wage_range.employer_percentage / HUNDRED, 2, "round"
                    ),
                )
            return DeductionAmount(
                worker=Decimal(wage_range.worker_amount),
                employer=Decimal(wage_range.employer_amount),
            )

        raise DeductionConfigurationError(
            f"Unknown calculation type '{calculation_type}'",
            code=deduction_type.code,
        )

    def find_wage_range(
        self,
        deduction_type: DeductionType,
        gross_wage: Decimal,
    ) -> DeductionWageRange:
        """Find the single range with ``min_wage <= gross < max_wage``.

        A wage on a boundary belongs to the range that starts there.
        """
        matches = [r for r in deduction_type.wage_ranges if r.contains(gross_wage)]
        if len(matches) != 1:
            raise BracketLookupError(deduction_type.code, gross_wage)
        return matches[0]

    async def add_deduction_type(
        self,
        code: str,
        name: str,
        effective_from: date,
        *,
        calculation_type: str = "flat",
        worker_amount: Decimal = Decimal("0"),
        employer_amount: Decimal = Decimal("0"),
        rounding_precision: int = 2,
        rounding_method: str = "round",
        applies_to_nationality: str | None = None,
        effective_until: date | None = None,
        wage_ranges: Sequence[WageBracket] | None = None,
    ) -> DeductionType:
        """Create a deduction rule after validating it.

        Raises:
            DeductionConfigurationError: On invalid values or an overlapping
                effective row for the same code
        """
        if calculation_type not in CALCULATION_TYPES:
            raise DeductionConfigurationError(
                f"Unknown calculation type '{calculation_type}'", code=code
            )
        if rounding_method not in ROUNDING_METHODS:
            raise DeductionConfigurationError(
                f"Unknown rounding method '{rounding_method}'", code=code
            )
        if rounding_precision < 0:
            raise DeductionConfigurationError("rounding_precision cannot be negative", code=code)
        if worker_amount < 0 or employer_amount < 0:
            raise DeductionConfigurationError("Deduction amounts cannot be negative", code=code)
        if effective_until is not None and effective_until < effective_from:
            raise DeductionConfigurationError(
                "effective_until cannot precede effective_from", code=code
            )

        await self._check_no_overlap(code, effective_from, effective_until)

        deduction_type = DeductionType(
            code=code,
            name=name,
            calculation_type=calculation_type,
            worker_amount=worker_amount,
            employer_amount=employer_amount,
            rounding_precision=rounding_precision,
            rounding_method=rounding_method,
            applies_to_nationality=applies_to_nationality,
            is_active=True,
            effective_from=effective_from,
            effective_until=effective_until,
            wage_ranges=[],
        )
        if wage_ranges:
            self.set_wage_ranges(deduction_type, wage_ranges)
        elif calculation_type == "wage_bracket":
            logger.warning("Wage-bracket deduction %s created without ranges", code)

        self.session.add(deduction_type)
        await self.session.flush()
        logger.info(
            "Deduction type added",
            extra={"code": code, "calculation_type": calculation_type},
        )
        return deduction_type

    async def supersede(
        self,
        code: str,
        effective_from: date,
        **changes,
    ) -> DeductionType:
        """Close the current row for ``code`` and insert its replacement.

        The old row stays active and ends the day before ``effective_from``,
        so it keeps pricing until the replacement starts. Unchanged fields
        (and wage ranges) carry over.

        Raises:
            DeductionConfigurationError: If no active row exists for the code
        """
        result = await self.session.execute(
            select(DeductionType)
            .where(DeductionType.code == code, DeductionType.is_active.is_(True))
            .order_by(DeductionType.effective_from.desc())
            .with_for_update()
        )
        current = result.scalars().first()
        if current is None:
            raise DeductionConfigurationError(
                f"No active deduction type with code '{code}' to supersede", code=code
            )
        if effective_from <= current.effective_from:
            raise DeductionConfigurationError(
                "Replacement must start after the current rule", code=code
            )

        current.effective_until = effective_from - timedelta(days=1)
        await self.session.flush()

        wage_ranges = changes.pop("wage_ranges", None)
        if wage_ranges is None and current.is_wage_bracket:
            wage_ranges = [
                WageBracket(
                    min_wage=r.min_wage,
                    max_wage=r.max_wage,
                    worker_amount=r.worker_amount,
                    employer_amount=r.employer_amount,
                    calculation_method=r.calculation_method,
                    worker_percentage=r.worker_percentage,
                    employer_percentage=r.employer_percentage,
                )
                for r in current.wage_ranges
            ]

        fields = {
            "name": current.name,
            "calculation_type": current.calculation_type,
            "worker_amount": current.worker_amount,
            "employer_amount": current.employer_amount,
            "rounding_precision": current.rounding_precision,
            "rounding_method": current.rounding_method,
            "applies_to_nationality": current.applies_to_nationality,
        }
        fields.update(changes)
        name = fields.pop("name")

        replacement = await self.add_deduction_type(
            code,
            name,
            effective_from,
            wage_ranges=wage_ranges,
            **fields,
        )
        logger.info(
            "Deduction type superseded",
            extra={"code": code, "old_id": current.id, "new_id": replacement.id},
        )
        return replacement

    def set_wage_ranges(
        self,
        deduction_type: DeductionType,
        ranges: Sequence[WageBracket],
    ) -> list[DeductionWageRange]:
        """Replace a rule's brackets with a validated, contiguous set.

        Raises:
            DeductionConfigurationError: If ranges overlap, leave gaps, are
                inverted or leave more than one range open-ended
        """
        code = deduction_type.code
        ordered = sorted(ranges, key=lambda r: r.min_wage)

        for index, bracket in enumerate(ordered):
            if bracket.calculation_method not in RANGE_METHODS:
                raise DeductionConfigurationError(
                    f"Unknown range calculation method '{bracket.calculation_method}'", code=code
                )
            if bracket.min_wage < 0 or bracket.worker_amount < 0 or bracket.employer_amount < 0:
                raise DeductionConfigurationError("Wage range values cannot be negative", code=code)
            is_last = index == len(ordered) - 1
            if bracket.max_wage is None:
                if not is_last:
                    raise DeductionConfigurationError(
                        "Only the top wage range may be open-ended", code=code
                    )
                continue
            if bracket.max_wage <= bracket.min_wage:
                raise DeductionConfigurationError(
                    f"Wage range {bracket.min_wage}-{bracket.max_wage} has max <= min", code=code
                )
            if not is_last:
                following = ordered[index + 1]
                if following.min_wage < bracket.max_wage:
                    raise DeductionConfigurationError(
                        f"Wage ranges overlap at {following.min_wage}", code=code
                    )
                if following.min_wage > bracket.max_wage:
                    raise DeductionConfigurationError(
                        f"Gap between wage ranges at {bracket.max_wage}", code=code
                    )

        deduction_type.wage_ranges = [
            DeductionWageRange(
                min_wage=r.min_wage,
                max_wage=r.max_wage,
                calculation_method=r.calculation_method,
                worker_amount=r.worker_amount,
                employer_amount=r.employer_amount,
                worker_percentage=r.worker_percentage,
                employer_percentage=r.employer_percentage,
            )
            for r in ordered
        ]
        return deduction_type.wage_ranges

    async def _check_no_overlap(
        self,
        code: str,
        effective_from: date,
        effective_until: date | None,
    ) -> None:
        """Reject a new row whose window meets an active row of the same code."""
        conditions = [
            DeductionType.code == code,
            DeductionType.is_active.is_(True),
            or_(
                DeductionType.effective_until.is_(None),
                DeductionType.effective_until >= effective_from,
            ),
        ]
        if effective_until is not None:
            conditions.append(DeductionType.effective_from <= effective_until)

        result = await self.session.execute(select(DeductionType.id).where(*conditions))
        if result.first() is not None:
            raise DeductionConfigurationError(
                f"An active deduction type with code '{code}' already covers this period",
                code=code,
            )

"""
Resource, Pool and PoolMembership models.

Resource = one sellable unit type with its own stock ledger and price.
Pool = "any one of N interchangeable resources", sold as one product.

✅ STOCK LOGIC ENCAPSULATED IN MODEL (SIREL principle)
"""

import logging
import uuid
from datetime import timedelta

from django.db import models, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from simple_history.models import HistoricalRecords

from bookman.exceptions import InsufficientStock, InvalidPoolConfiguration
from bookman.models.stock import UNLIMITED, StockEntry, StockEntryKind, StockEntryStatus
from bookman.timespan import Window, coerce_datetime

logger = logging.getLogger(__name__)


class ResourceKind(models.TextChoices):
    """Resource type."""

    SIMPLE = "simple", _("Simples")
    BOOKING = "booking", _("Reserva por período")


class PricingStrategy(models.TextChoices):
    """How a pool ranks its members."""

    LOWEST = "lowest", _("Menor preço")
    HIGHEST = "highest", _("Maior preço")
    AVERAGE = "average", _("Preço médio")

    @classmethod
    def default(cls) -> "PricingStrategy":
        from bookman.conf import get_setting

        return cls(get_setting("DEFAULT_PRICING_STRATEGY"))


def _default_strategy():
    return PricingStrategy.default().value


class Resource(models.Model):
    """
    Recurso vendável com ledger de estoque próprio.

    Status of stock is never stored: it is derived from StockEntry rows.
    Resources that do not manage stock are always available (UNLIMITED).
    """

    uuid = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
        verbose_name=_("UUID"),
    )
    code = models.SlugField(unique=True, max_length=50, verbose_name=_("Código"))
    name = models.CharField(max_length=200, verbose_name=_("Nome"))
    kind = models.CharField(
        max_length=20,
        choices=ResourceKind.choices,
        default=ResourceKind.SIMPLE,
        verbose_name=_("Tipo"),
        help_text=_("Recursos de reserva exigem período (início e fim)"),
    )
    manages_stock = models.BooleanField(
        default=True,
        verbose_name=_("Controla estoque"),
    )
    price_q = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name=_("Preço (centavos)"),
        help_text=_("Preço por período para recursos de reserva"),
    )
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_("Metadados"))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("criado em"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("atualizado em"))

    history = HistoricalRecords()

    class Meta:
        db_table = "bookman_resource"
        verbose_name = _("Recurso")
        verbose_name_plural = _("Recursos")
        ordering = ["code"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_time_bound(self) -> bool:
        return self.kind == ResourceKind.BOOKING

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    def _ledger(self):
        return StockEntry.objects.filter(resource_id=self.pk)

    def available_stock(self, now=None) -> int:
        """Estoque disponível agora (UNLIMITED se não controla estoque)."""
        return self.available_on(now or timezone.now())

    def available_on(self, instant) -> int:
        """
        Available quantity at a single instant.

        Example with 100 units:
        - Claim 1: 20 units, days 5-10
        - Claim 2: 30 units, days 8-15
        - Available on day 3: 100, day 6: 80, day 9: 50, day 12: 70, day 20: 100
        """
        if not self.manages_stock:
            return UNLIMITED

        instant = coerce_datetime(instant)
        ledger = self._ledger()
        base = ledger.movements().effective_at(instant).total()
        not_active = ledger.claims().pending().inactive_at(instant).total()
        return max(0, base + not_active)

    def available_on_range(self, window: Window, now=None) -> int:
        """
        Available quantity for a whole window.

        Every pending claim overlapping the window counts against it,
        even if two such claims never overlap each other.
        """
        if not self.manages_stock:
            return UNLIMITED

        window = window.resolve(now or timezone.now())
        ledger = self._ledger()

        movements = ledger.movements()
        if window.starts_at is not None:
            movements = movements.effective_at(window.starts_at)
        base = movements.total()

        pending = ledger.claims().pending()
        not_overlapping = pending.total() - pending.overlapping(window).total()
        return max(0, base + not_overlapping)

    def available_for(self, window: Window | None, now=None) -> int:
        """Capacity used by allocation: windowed for time-bound resources."""
        if window is not None and window.is_complete and self.is_time_bound:
            return self.available_on_range(window, now=now)
        return self.available_stock(now)

    def is_available_for(self, window: Window | None, quantity: int = 1, now=None) -> bool:
        return self.available_for(window, now=now) >= quantity

    def is_in_stock(self, now=None) -> bool:
        return self.available_stock(now) > 0

    def claimed_stock(self, now=None) -> int:
        """Σ pending claims active right now."""
        now = now or timezone.now()
        return self._ledger().claims().pending().active_at(now).total()

    def planned_claimed_stock(self, now=None) -> int:
        """Σ pending claims not yet expired, including future bookings."""
        now = now or timezone.now()
        return self._ledger().claims().pending().effective_at(now).total()

    def pending_claims(self, now=None):
        now = now or timezone.now()
        return self._ledger().claims().pending().effective_at(now)

    # ══════════════════════════════════════════════════════════════
    # MUTATIONS (serialized per resource row)
    # ══════════════════════════════════════════════════════════════

    def _lock(self):
        """SELECT FOR UPDATE on this resource row. Call inside atomic()."""
        return Resource.objects.select_for_update().get(pk=self.pk)

    def increase(self, quantity: int = 1, note: str = "", reference: str = "") -> bool:
        """Entrada de estoque. False when stock is not managed."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        if not self.manages_stock:
            return False

        with transaction.atomic():
            self._lock()
            StockEntry.objects.create(
                resource=self,
                quantity=quantity,
                kind=StockEntryKind.INCREASE,
                status=StockEntryStatus.COMPLETED,
                note=note,
                reference=reference,
            )

        logger.info(
            f"Stock +{quantity} for {self.code}",
            extra={"resource": self.code, "quantity": quantity},
        )
        return True

    def decrease(
        self,
        quantity: int = 1,
        until=None,
        note: str = "",
        reference: str = "",
        now=None,
    ) -> bool:
        """
        Saída de estoque.

        With `until`, the decrease is temporary and stops counting after
        that instant.

        Raises:
            InsufficientStock: current availability is below `quantity`
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        if not self.manages_stock:
            return True

        now = now or timezone.now()
        with transaction.atomic():
            self._lock()
            available = self.available_stock(now)
            if available < quantity:
                logger.warning(
                    f"Decrease rejected for {self.code}: {quantity} > {available}",
                    extra={"resource": self.code, "requested": quantity, "available": available},
                )
                raise InsufficientStock(self.code, quantity, available)

            StockEntry.objects.create(
                resource=self,
                quantity=-quantity,
                kind=StockEntryKind.DECREASE,
                status=StockEntryStatus.COMPLETED,
                ends_at=coerce_datetime(until),
                note=note,
                reference=reference,
            )

        logger.info(
            f"Stock -{quantity} for {self.code}",
            extra={"resource": self.code, "quantity": -quantity},
        )
        return True

    def claim(
        self,
        quantity: int = 1,
        starts_at=None,
        ends_at=None,
        note: str = "",
        reference: str = "",
        now=None,
    ) -> StockEntry | None:
        """
        Reserva estoque para um período.

        Writes DECREASE (-q, completed) + CLAIM (+q, pending, window).
        No start means active immediately, no end means permanent.

        Returns:
            The pending CLAIM entry, or None when stock is not managed

        Raises:
            InsufficientStock: quantity exceeds availability over the window
        """
        from bookman.conf import get_setting

        if quantity <= 0:
            raise ValueError("quantity must be positive")
        if not self.manages_stock:
            return None

        now = now or timezone.now()
        window = Window(coerce_datetime(starts_at), coerce_datetime(ends_at))

        with transaction.atomic():
            self._lock()

            if get_setting("SWEEP_ON_CLAIM"):
                StockEntry.release_expired(now=now, resource=self)

            available = self.available_on_range(window, now=now)
            if available < quantity:
                logger.warning(
                    f"Claim rejected for {self.code}: {quantity} > {available} in {window}",
                    extra={
                        "resource": self.code,
                        "requested": quantity,
                        "available": available,
                        "window": str(window),
                    },
                )
                raise InsufficientStock(self.code, quantity, available)

            StockEntry.objects.create(
                resource=self,
                quantity=-quantity,
                kind=StockEntryKind.DECREASE,
                status=StockEntryStatus.COMPLETED,
                note=note,
                reference=reference,
            )
            claim = StockEntry.objects.create(
                resource=self,
                quantity=quantity,
                kind=StockEntryKind.CLAIM,
                status=StockEntryStatus.PENDING,
                starts_at=window.starts_at,
                ends_at=window.ends_at,
                note=note,
                reference=reference,
            )

        logger.info(
            f"Claimed {quantity} of {self.code} for {window}",
            extra={
                "resource": self.code,
                "quantity": quantity,
                "claim": claim.pk,
                "reference": reference,
            },
        )

        from bookman.signals import stock_claimed

        stock_claimed.send(sender=Resource, claim=claim, resource=self)
        return claim

    def release_expired_claims(self, now=None) -> int:
        return StockEntry.release_expired(now=now, resource=self)

    def release_claims(self, reference: str, reason: str = "released", now=None) -> int:
        """Release every pending claim of this resource with `reference`."""
        released = 0
        claims = self._ledger().claims().pending().for_reference(reference).order_by("pk")
        for claim in claims:
            if claim.release(now=now, reason=reason):
                released += 1
        return released


class Pool(models.Model):
    """
    Pool de recursos intercambiáveis.

    The pool ranks its members by effective price (member price, falling
    back to the pool's own price) using its pricing strategy.
    """

    uuid = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
        verbose_name=_("UUID"),
    )
    code = models.SlugField(unique=True, max_length=50, verbose_name=_("Código"))
    name = models.CharField(max_length=200, verbose_name=_("Nome"))
    strategy = models.CharField(
        max_length=20,
        choices=PricingStrategy.choices,
        default=_default_strategy,
        verbose_name=_("Estratégia de preço"),
    )
    price_q = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name=_("Preço próprio (centavos)"),
        help_text=_("Usado para membros sem preço"),
    )
    manages_stock = models.BooleanField(
        default=False,
        verbose_name=_("Controla estoque"),
        help_text=_("Ignorado quando algum membro controla o próprio estoque"),
    )
    members = models.ManyToManyField(
        Resource,
        through="bookman.PoolMembership",
        related_name="pools",
        verbose_name=_("Membros"),
    )
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_("Metadados"))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("criado em"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("atualizado em"))

    history = HistoricalRecords()

    class Meta:
        db_table = "bookman_pool"
        verbose_name = _("Pool")
        verbose_name_plural = _("Pools")
        ordering = ["code"]

    def __str__(self) -> str:
        return self.name

    # ══════════════════════════════════════════════════════════════
    # MEMBERSHIP
    # ══════════════════════════════════════════════════════════════

    def add_members(self, *resources: Resource) -> None:
        """Append resources keeping insertion order."""
        last = (
            self.memberships.aggregate(last=models.Max("sort_order"))["last"] or 0
        )
        for offset, resource in enumerate(resources, start=1):
            PoolMembership.objects.get_or_create(
                pool=self,
                resource=resource,
                defaults={"sort_order": last + offset},
            )

    def ordered_members(self) -> list[Resource]:
        return [
            m.resource
            for m in self.memberships.select_related("resource").order_by("sort_order", "pk")
        ]

    def has_time_bound_members(self) -> bool:
        return self.members.filter(kind=ResourceKind.BOOKING).exists()

    # ══════════════════════════════════════════════════════════════
    # AVAILABILITY
    # ══════════════════════════════════════════════════════════════

    def capacity(self, window: Window | None = None, now=None) -> int:
        """
        Σ member availability for the window.

        UNLIMITED when no member manages stock (unless the pool says it
        manages stock itself, in which case it has nothing to sell).
        """
        members = self.ordered_members()
        if not members:
            return 0

        managed = [m for m in members if m.manages_stock]
        if not managed:
            return 0 if self.manages_stock else UNLIMITED

        return sum(m.available_for(window, now=now) for m in managed)

    def is_available(self, window: Window | None = None, quantity: int = 1, now=None) -> bool:
        capacity = self.capacity(window, now=now)
        return capacity == UNLIMITED or capacity >= quantity

    def member_availability(self, window: Window | None = None, now=None) -> list[dict]:
        """Per-member availability report."""
        return [
            {
                "id": member.pk,
                "code": member.code,
                "name": member.name,
                "kind": member.kind,
                "manages_stock": member.manages_stock,
                "available": (
                    member.available_for(window, now=now) if member.manages_stock else None
                ),
            }
            for member in self.ordered_members()
        ]

    def availability_calendar(self, start, end, now=None) -> dict[str, int | None]:
        """
        Capacity per day between start and end (inclusive).

        None means unlimited.
        """
        start = coerce_datetime(start)
        end = coerce_datetime(end)
        calendar = {}

        current = start
        while current <= end:
            day = Window(current, current + timedelta(days=1))
            capacity = self.capacity(day, now=now)
            calendar[current.date().isoformat()] = None if capacity == UNLIMITED else capacity
            current += timedelta(days=1)

        return calendar

    def release_claims(self, reference: str, reason: str = "released", now=None) -> int:
        """Release every pending claim with `reference` across all members."""
        return sum(
            member.release_claims(reference, reason=reason, now=now)
            for member in self.ordered_members()
        )

    def validate_configuration(self, strict: bool = False, now=None) -> dict:
        """
        Check the pool can be sold.

        Raises InvalidPoolConfiguration on errors (and on warnings when
        strict=True). Returns {"valid", "errors", "warnings"}.
        """
        members = self.ordered_members()
        if not members:
            raise InvalidPoolConfiguration(self.code, "pool has no members")

        errors = []
        warnings = []

        if len({m.kind for m in members}) > 1:
            warnings.append("Mixed member kinds detected.")

        unpriced = [m.code for m in members if m.price_q is None]
        if unpriced and self.price_q is None:
            errors.append(f"Members without price and no pool price: {', '.join(unpriced)}")

        empty = [m.code for m in members if m.manages_stock and m.available_stock(now) <= 0]
        if empty:
            warnings.append(f"Members with zero stock: {', '.join(empty)}")

        if errors:
            raise InvalidPoolConfiguration(self.code, errors[0], errors=errors)
        if strict and warnings:
            raise InvalidPoolConfiguration(self.code, warnings[0], warnings=warnings)

        return {"valid": True, "errors": errors, "warnings": warnings}


class PoolMembership(models.Model):
    """Ordered link between a pool and a resource."""

    pool = models.ForeignKey(
        Pool,
        on_delete=models.CASCADE,
        related_name="memberships",
        verbose_name=_("Pool"),
    )
    resource = models.ForeignKey(
        Resource,
        on_delete=models.CASCADE,
        related_name="memberships",
        verbose_name=_("Recurso"),
    )
    sort_order = models.PositiveIntegerField(default=0, verbose_name=_("Ordem"))

    class Meta:
        db_table = "bookman_pool_membership"
        verbose_name = _("Membro do Pool")
        verbose_name_plural = _("Membros do Pool")
        ordering = ["sort_order", "pk"]
        constraints = [
            models.UniqueConstraint(fields=["pool", "resource"], name="bookman_unique_pool_member"),
        ]

    def __str__(self) -> str:
        return f"{self.pool} → {self.resource}"

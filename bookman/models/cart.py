"""
Cart and CartItem models.

Cart = the current, uncommitted allocation set of one shopper.
CartItem = quantity of a pool (or bare resource) bound to an assigned
resource at a unit price, optionally for a window.

Drafts never touch the stock ledger. Claims are only written at checkout.

✅ ALLOCATION LOGIC ENCAPSULATED IN MODEL (SIREL principle)
"""

import logging
import uuid
from collections import Counter

from django.db import models, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from simple_history.models import HistoricalRecords

from bookman.exceptions import (
    BookError,
    CartNotReady,
    InsufficientStock,
    InvalidTimespan,
    NoPriceAvailable,
    NotEnoughAvailableInTimespan,
    NotEnoughStock,
)
from bookman.models.resource import Pool, Resource
from bookman.models.stock import StockEntry
from bookman.timespan import Window, coerce_datetime, validate_timespan, windows_overlap

logger = logging.getLogger(__name__)


def _requires_window(target) -> bool:
    """A pool needs a window when any member is time-bound."""
    if isinstance(target, Pool):
        return target.has_time_bound_members()
    return target.is_time_bound


class CartStatus(models.TextChoices):
    """Cart lifecycle."""

    ACTIVE = "active", _("Ativo")
    CONVERTED = "converted", _("Convertido")
    ABANDONED = "abandoned", _("Abandonado")


class Cart(models.Model):
    """
    Carrinho de reservas.

    The cart-level window is stored verbatim (unordered or past dates are
    accepted here); the timespan validator only runs when a window is
    bound to a specific purchase in add().
    """

    uuid = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
        verbose_name=_("UUID"),
    )
    session_key = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        verbose_name=_("Sessão"),
    )
    status = models.CharField(
        max_length=20,
        choices=CartStatus.choices,
        default=CartStatus.ACTIVE,
        db_index=True,
        verbose_name=_("Status"),
    )

    starts_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Início"))
    ends_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Fim"))

    expires_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Expira em"))
    converted_at = models.DateTimeField(null=True, blank=True, verbose_name=_("convertido em"))
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_("Metadados"))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("criado em"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("atualizado em"))

    history = HistoricalRecords()

    class Meta:
        db_table = "bookman_cart"
        verbose_name = _("Carrinho")
        verbose_name_plural = _("Carrinhos")
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Cart {self.uuid}"

    # ══════════════════════════════════════════════════════════════
    # PROPERTIES
    # ══════════════════════════════════════════════════════════════

    @property
    def window(self) -> Window | None:
        return Window.of(self.starts_at, self.ends_at)

    @property
    def is_active(self) -> bool:
        return self.status == CartStatus.ACTIVE

    @property
    def claim_reference(self) -> str:
        from bookman.conf import get_setting

        return f"{get_setting('CLAIM_REFERENCE_PREFIX')}:{self.uuid}"

    def is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at <= now

    def _ensure_active(self) -> None:
        if not self.is_active:
            raise BookError("CART_NOT_ACTIVE", cart=str(self.uuid), status=self.status)

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    def _items(self):
        return self.items.select_related("pool", "resource", "assigned_resource").order_by(
            "created_at", "pk"
        )

    def drafted_usage(self, window: Window | None = None, exclude=()) -> Counter:
        """
        Quantity drafted per assigned resource that competes with `window`.

        Items on resources that are not time-bound always count; time-bound
        ones only when their window overlaps. An undated time-bound item
        has not committed to any period yet, so it never competes with a
        dated window.
        """
        usage = Counter()
        excluded = set(exclude)
        for item in self._items():
            if item.pk in excluded or not item.is_available or item.assigned_resource_id is None:
                continue
            if item.assigned_resource.is_time_bound:
                if item.window is None and window is not None:
                    continue
                if not windows_overlap(item.window, window):
                    continue
            usage[item.assigned_resource_id] += item.quantity
        return usage

    def total_q(self) -> int:
        return sum(item.subtotal_q for item in self.items.all())

    def total_quantity(self) -> int:
        return self.items.aggregate(total=models.Sum("quantity"))["total"] or 0

    def items_needing_adjustments(self) -> dict[int, list[str]]:
        """{item pk: missing fields} for items that still need a window."""
        return {
            item.pk: adjustments
            for item in self._items()
            if (adjustments := item.required_adjustments())
        }

    def is_ready_for_checkout(self) -> bool:
        items = list(self._items())
        return bool(items) and all(item.is_ready_for_checkout() for item in items)

    # ══════════════════════════════════════════════════════════════
    # DRAFTING
    # ══════════════════════════════════════════════════════════════

    def add(
        self,
        target,
        quantity: int = 1,
        starts_at=None,
        ends_at=None,
        parameters: dict | None = None,
        now=None,
    ) -> list["CartItem"]:
        """
        Adiciona um pool ou recurso ao carrinho.

        Without an explicit window the cart-level window is used when both
        of its dates are set and the target has a time-bound resource.
        A window being bound here must pass
        validate_timespan(). Without any window the item is incomplete.

        Raises:
            InvalidTimespan: malformed, unordered or past window
            InsufficientStock: bare resource cannot cover the quantity
            NotEnoughStock: pool exhausted before the quantity was reached
            NoPriceAvailable: nothing sellable has a price
        """
        from bookman.allocation import (
            allocate,
            build_resource_snapshot,
            build_snapshot,
            group_assignments,
            unit_price_for,
        )

        if quantity <= 0:
            raise ValueError("quantity must be positive")
        self._ensure_active()

        now = now or timezone.now()
        parameters = parameters or {}

        if (
            starts_at is None
            and ends_at is None
            and self.starts_at
            and self.ends_at
            and _requires_window(target)
        ):
            starts_at, ends_at = self.starts_at, self.ends_at

        window = None
        if starts_at is not None or ends_at is not None:
            window = validate_timespan(starts_at, ends_at, now)

        with transaction.atomic():
            usage = self.drafted_usage(window)

            if isinstance(target, Pool):
                snapshot = build_snapshot(target, window, now=now)
                groups = group_assignments(allocate(snapshot, quantity, usage))
                pool, resource = target, None
            else:
                snapshot = build_resource_snapshot(target, window, now=now)
                candidate = snapshot.candidates[0]
                if not candidate.is_priced:
                    raise NoPriceAvailable(target.code)
                remaining = candidate.remaining(usage)
                if remaining < quantity:
                    raise InsufficientStock(target.code, quantity, remaining)
                unit_price_q = unit_price_for(candidate.price_q, window, target.is_time_bound)
                groups = [(target, unit_price_q, quantity)]
                pool, resource = None, target

            items = [
                self._merge_or_create(
                    pool=pool,
                    resource=resource,
                    assigned_resource=assigned,
                    unit_price_q=unit_price_q,
                    quantity=group_quantity,
                    window=window,
                    parameters=parameters,
                )
                for assigned, unit_price_q, group_quantity in groups
            ]

        logger.info(
            f"Added {quantity}x {target.code} to cart {self.uuid}",
            extra={
                "cart": str(self.uuid),
                "target": target.code,
                "quantity": quantity,
                "window": str(window) if window else None,
                "assignments": [(a.code, p, q) for a, p, q in groups],
            },
        )
        return items

    def _merge_or_create(
        self, pool, resource, assigned_resource, unit_price_q, quantity, window, parameters
    ) -> "CartItem":
        starts_at = window.starts_at if window else None
        ends_at = window.ends_at if window else None

        candidates = self.items.filter(
            pool=pool,
            resource=resource,
            assigned_resource=assigned_resource,
            unit_price_q=unit_price_q,
            starts_at=starts_at,
            ends_at=ends_at,
            is_available=True,
        ).order_by("created_at", "pk")

        # parameters compared in Python, not in SQL
        for item in candidates:
            if item.parameters == parameters:
                item.quantity += quantity
                item.save(update_fields=["quantity", "updated_at"])
                return item

        return CartItem.objects.create(
            cart=self,
            pool=pool,
            resource=resource,
            assigned_resource=assigned_resource,
            unit_price_q=unit_price_q,
            quantity=quantity,
            starts_at=starts_at,
            ends_at=ends_at,
            parameters=parameters,
        )

    def remove(self, target, quantity: int = 1, parameters: dict | None = None):
        """
        Remove unidades do carrinho.

        Decrements matching items starting from the highest price, newest
        first; items that reach zero are deleted and the remainder carries
        to the next match.

        Returns:
            The last item decremented that still exists, or True
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        lookup = {"pool": target} if isinstance(target, Pool) else {"resource": target}
        matches = [
            item
            for item in self.items.filter(**lookup)
            if parameters is None or item.parameters == parameters
        ]
        matches.sort(
            key=lambda i: (
                i.unit_price_q if i.unit_price_q is not None else -1,
                i.created_at,
                i.pk,
            ),
            reverse=True,
        )

        remaining = quantity
        survivor = None
        with transaction.atomic():
            for item in matches:
                if remaining <= 0:
                    break
                taken = min(remaining, item.quantity)
                remaining -= taken
                item.quantity -= taken
                if item.quantity == 0:
                    item.delete()
                else:
                    item.save(update_fields=["quantity", "updated_at"])
                    survivor = item

        if matches:
            logger.info(
                f"Removed {quantity - remaining}x {target.code} from cart {self.uuid}",
                extra={"cart": str(self.uuid), "target": target.code, "quantity": quantity},
            )
        return survivor or True

    def clear(self) -> int:
        deleted, _ = self.items.all().delete()
        return deleted

    # ══════════════════════════════════════════════════════════════
    # REALLOCATION
    # ══════════════════════════════════════════════════════════════

    def _is_affected(self, item: "CartItem", overwrite_item_windows: bool) -> bool:
        if item.pool_id is None and not item.resource.is_time_bound:
            return False
        if overwrite_item_windows:
            return True
        return item.starts_at is None and item.ends_at is None

    def set_window(
        self,
        starts_at,
        ends_at,
        validate: bool = True,
        overwrite_item_windows: bool = True,
        strict: bool = False,
        now=None,
    ):
        """
        Troca o período do carrinho e realoca os itens.

        Cart-level dates are stored verbatim. Affected items are re-derived
        from scratch in creation order against one snapshot per pool, so
        resources that became free are picked up and resources that became
        busy are dropped. An item that cannot be satisfied (or whose window
        is malformed) is marked unavailable; with strict=True it raises
        instead and nothing changes.

        With validate=False the window is copied onto the items and prices
        are recomputed for the new duration, without availability checks.

        Running it twice with the same window yields the same assignments.
        """
        from bookman.signals import cart_reallocated

        self._ensure_active()
        now = now or timezone.now()
        starts_at = coerce_datetime(starts_at)
        ends_at = coerce_datetime(ends_at)
        window = Window.of(starts_at, ends_at)

        previous = (self.starts_at, self.ends_at)
        try:
            with transaction.atomic():
                Cart.objects.select_for_update().filter(pk=self.pk).first()
                self.starts_at = starts_at
                self.ends_at = ends_at
                self.save(update_fields=["starts_at", "ends_at", "updated_at"])

                affected = [
                    item
                    for item in self._items()
                    if self._is_affected(item, overwrite_item_windows)
                ]

                if validate:
                    result = self._reallocate(affected, window, strict=strict, now=now)
                else:
                    result = self._reprice(affected, window, now=now)
        except BookError:
            # row rolled back: keep the instance in step with it
            self.starts_at, self.ends_at = previous
            raise

        log = logger.warning if result.has_unavailable else logger.info
        log(
            f"Cart {self.uuid} moved to {window}: "
            f"{len(result.reallocated)} reallocated, {len(result.unavailable)} unavailable",
            extra={
                "cart": str(self.uuid),
                "window": str(window) if window else None,
                "validated": validate,
                "reallocated": [item.pk for item in result.reallocated],
                "unavailable": [item.pk for item in result.unavailable],
            },
        )

        cart_reallocated.send(sender=Cart, cart=self, result=result)
        return result

    def _lock_resources(self, items) -> None:
        """Lock every resource the items could be assigned to, in pk order."""
        ids = set()
        for item in items:
            if item.pool_id is not None:
                ids.update(item.pool.memberships.values_list("resource_id", flat=True))
            else:
                ids.add(item.resource_id)
        if ids:
            list(Resource.objects.select_for_update().filter(pk__in=ids).order_by("pk"))

    def _reallocate(self, affected, window, strict, now):
        from bookman.allocation import (
            allocate,
            build_resource_snapshot,
            build_snapshot,
            group_assignments,
        )
        from bookman.results import ReallocationResult

        result = ReallocationResult(window=window, validated=True)
        if not affected:
            return result

        malformed = None
        if window is not None:
            try:
                validate_timespan(window.starts_at, window.ends_at, now)
            except InvalidTimespan as exc:
                if strict:
                    raise
                malformed = exc

        self._lock_resources(affected)
        affected = self._fold_splits(affected)

        # Snapshot everything before deciding anything
        snapshots = {}
        for item in affected:
            key = ("pool", item.pool_id) if item.pool_id else ("resource", item.resource_id)
            if key not in snapshots and malformed is None:
                if item.pool_id:
                    snapshots[key] = build_snapshot(item.pool, window, now=now)
                else:
                    snapshots[key] = build_resource_snapshot(item.resource, window, now=now)

        usage = self.drafted_usage(window, exclude=[item.pk for item in affected])

        for item in affected:
            item.starts_at = window.starts_at if window else None
            item.ends_at = window.ends_at if window else None

            if malformed is not None:
                item.mark_unavailable()
                result.unavailable.append(item)
                continue

            key = ("pool", item.pool_id) if item.pool_id else ("resource", item.resource_id)
            snapshot = snapshots[key]
            try:
                assignments = allocate(snapshot, item.quantity, usage)
            except (NotEnoughStock, NoPriceAvailable) as exc:
                available = exc.available if isinstance(exc, NotEnoughStock) else 0
                if strict:
                    raise NotEnoughAvailableInTimespan(
                        item.target.code,
                        item.quantity,
                        available,
                        window.starts_at if window else None,
                        window.ends_at if window else None,
                    ) from exc
                logger.warning(
                    f"Cart item #{item.pk} ({item.target.code}) unavailable for {window}",
                    extra={
                        "cart": str(self.uuid),
                        "item": item.pk,
                        "requested": item.quantity,
                        "available": available,
                    },
                )
                item.mark_unavailable()
                result.unavailable.append(item)
                continue

            groups = group_assignments(assignments)
            first, *rest = groups
            item.assigned_resource, item.unit_price_q, item.quantity = first
            item.is_available = True
            item.save()
            result.reallocated.append(item)

            for assigned, unit_price_q, group_quantity in rest:
                result.reallocated.append(
                    CartItem.objects.create(
                        cart=self,
                        pool=item.pool,
                        resource=item.resource,
                        assigned_resource=assigned,
                        unit_price_q=unit_price_q,
                        quantity=group_quantity,
                        starts_at=item.starts_at,
                        ends_at=item.ends_at,
                        parameters=item.parameters,
                    )
                )

            for assignment in assignments:
                usage[assignment.resource_id] += 1

        result.reallocated = self._merge_duplicates(result.reallocated)
        return result

    def _fold_splits(self, items: list["CartItem"]) -> list["CartItem"]:
        """
        Fold rows of the same target and parameters into the oldest one.

        A previous reallocation may have split one entry across several
        resources, appending the remainder as newer rows. Folding them back
        keeps the re-derivation order tied to the original entries, so the
        same window always yields the same assignments.
        """
        kept: dict[tuple, CartItem] = {}
        for item in items:
            key = item.lineage_key()
            head = kept.get(key)
            if head is None:
                kept[key] = item
                continue
            head.quantity += item.quantity
            item.delete()
        return list(kept.values())

    def _reprice(self, affected, window, now):
        from bookman.adapters.prices import effective_price
        from bookman.allocation import unit_price_for
        from bookman.conf import get_price_backend
        from bookman.results import ReallocationResult

        backend = get_price_backend()
        result = ReallocationResult(window=window, validated=False)

        for item in affected:
            item.starts_at = window.starts_at if window else None
            item.ends_at = window.ends_at if window else None
            assigned = item.assigned_resource
            if assigned is not None:
                price = effective_price(backend, assigned, item.pool, now)
                item.unit_price_q = (
                    None if price is None else unit_price_for(price, window, assigned.is_time_bound)
                )
            item.save()
            result.reallocated.append(item)

        return result

    def _merge_duplicates(self, items: list["CartItem"]) -> list["CartItem"]:
        """Fold items that ended up with the same merge key into the oldest one."""
        kept: list[CartItem] = []
        for item in items:
            twin = next((k for k in kept if k.merge_key() == item.merge_key()), None)
            if twin is None:
                kept.append(item)
                continue
            twin.quantity += item.quantity
            twin.save(update_fields=["quantity", "updated_at"])
            item.delete()
        return kept

    # ══════════════════════════════════════════════════════════════
    # CHECKOUT BOUNDARY
    # ══════════════════════════════════════════════════════════════

    def checkout(self, now=None) -> list[StockEntry]:
        """
        Converte o carrinho em reservas (claims) no ledger.

        One claim per item against its assigned resource, all in one
        transaction: any InsufficientStock rolls every claim back. Only
        time-bound resources are claimed for the item's window; everything
        else gets a permanent claim.

        Raises:
            CartNotReady: some item lacks a window, a price or availability
            InsufficientStock: stock changed since the draft
        """
        from bookman.signals import cart_checked_out

        self._ensure_active()
        now = now or timezone.now()

        items = list(self._items())
        issues = {item.pk: item.readiness_issues() for item in items}
        issues = {pk: fields for pk, fields in issues.items() if fields}
        if not items or issues:
            raise CartNotReady(issues, cart=str(self.uuid))

        reference = self.claim_reference
        claims = []
        with transaction.atomic():
            resource_ids = sorted({item.assigned_resource_id for item in items})
            list(Resource.objects.select_for_update().filter(pk__in=resource_ids).order_by("pk"))

            for item in items:
                resource = item.assigned_resource
                # consumables are sold for good: permanent claim, no window
                window = item.window if resource.is_time_bound else None
                claim = resource.claim(
                    item.quantity,
                    starts_at=window.starts_at if window else None,
                    ends_at=window.ends_at if window else None,
                    note=f"Cart item #{item.pk}",
                    reference=reference,
                    now=now,
                )
                if claim is not None:
                    claims.append(claim)

            self.status = CartStatus.CONVERTED
            self.converted_at = now
            self.save(update_fields=["status", "converted_at", "updated_at"])

        logger.info(
            f"Cart {self.uuid} checked out with {len(claims)} claim(s)",
            extra={"cart": str(self.uuid), "claims": [c.pk for c in claims], "reference": reference},
        )

        cart_checked_out.send(sender=Cart, cart=self, claims=claims)
        return claims

    def release_claims(self, reason: str = "cancelled", now=None) -> int:
        """Release every pending claim issued for this cart."""
        released = 0
        claims = StockEntry.objects.claims().pending().for_reference(self.claim_reference)
        for claim in claims.select_related("resource").order_by("pk"):
            if claim.release(now=now, reason=reason):
                released += 1
        return released

    def cancel(self, reason: str = "cancelled") -> None:
        """
        Abandona o carrinho.

        Emits cart_cancelled; the default handler releases any claims
        issued at checkout.
        """
        from bookman.signals import cart_cancelled

        if self.status == CartStatus.ABANDONED:
            return

        self.status = CartStatus.ABANDONED
        self.save(update_fields=["status", "updated_at"])

        logger.info(f"Cart {self.uuid} cancelled", extra={"cart": str(self.uuid), "reason": reason})
        cart_cancelled.send(sender=Cart, cart=self, reason=reason)


class CartItem(models.Model):
    """
    Item do carrinho.

    Exactly one of pool/resource is the target; assigned_resource is the
    concrete resource the allocation engine picked (the resource itself
    for bare resource items).
    """

    cart = models.ForeignKey(
        Cart,
        on_delete=models.CASCADE,
        related_name="items",
        verbose_name=_("Carrinho"),
    )
    pool = models.ForeignKey(
        Pool,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="cart_items",
        verbose_name=_("Pool"),
    )
    resource = models.ForeignKey(
        Resource,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="cart_items",
        verbose_name=_("Recurso"),
    )
    assigned_resource = models.ForeignKey(
        Resource,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="assigned_cart_items",
        verbose_name=_("Recurso alocado"),
    )
    quantity = models.PositiveIntegerField(default=1, verbose_name=_("Quantidade"))
    unit_price_q = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name=_("Preço unitário (centavos)"),
        help_text=_("Vazio = sem preço (item indisponível)"),
    )

    starts_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Início"))
    ends_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Fim"))

    parameters = models.JSONField(default=dict, blank=True, verbose_name=_("Parâmetros"))
    is_available = models.BooleanField(default=True, verbose_name=_("Disponível"))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("criado em"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("atualizado em"))

    class Meta:
        db_table = "bookman_cart_item"
        verbose_name = _("Item do Carrinho")
        verbose_name_plural = _("Itens do Carrinho")
        ordering = ["created_at", "pk"]

    def __str__(self) -> str:
        return f"{self.quantity}x {self.target}"

    def save(self, *args, **kwargs):
        if (self.pool_id is None) == (self.resource_id is None):
            raise BookError("INVALID_CART_TARGET", item=self.pk)
        if self.resource_id is not None and self.assigned_resource_id is None:
            self.assigned_resource_id = self.resource_id
        super().save(*args, **kwargs)

    @property
    def target(self):
        return self.pool if self.pool_id else self.resource

    @property
    def window(self) -> Window | None:
        return Window.of(self.starts_at, self.ends_at)

    @property
    def subtotal_q(self) -> int:
        if self.unit_price_q is None:
            return 0
        return self.unit_price_q * self.quantity

    def lineage_key(self) -> tuple:
        """What the shopper asked for, regardless of how it was allocated."""
        return (self.pool_id, self.resource_id, repr(sorted(self.parameters.items())))

    def merge_key(self) -> tuple:
        return (
            self.pool_id,
            self.resource_id,
            self.assigned_resource_id,
            self.unit_price_q,
            self.starts_at,
            self.ends_at,
            self.is_available,
            repr(sorted(self.parameters.items())),
        )

    def mark_unavailable(self) -> None:
        """Clear price and assignment; the item stays in the cart, not ready."""
        self.unit_price_q = None
        self.is_available = False
        if self.pool_id is not None:
            self.assigned_resource = None
        self.save()

    # ══════════════════════════════════════════════════════════════
    # READINESS
    # ══════════════════════════════════════════════════════════════

    def requires_window(self) -> bool:
        return _requires_window(self.target)

    def required_adjustments(self) -> list[str]:
        if not self.requires_window():
            return []
        return [name for name in ("starts_at", "ends_at") if getattr(self, name) is None]

    def readiness_issues(self) -> list[str]:
        """Required adjustments plus missing price or availability."""
        issues = self.required_adjustments()
        if self.unit_price_q is None:
            issues.append("unit_price_q")
        if not self.is_available:
            issues.append("is_available")
        return issues

    def is_ready_for_checkout(self) -> bool:
        return not self.readiness_issues()

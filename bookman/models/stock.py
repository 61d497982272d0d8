"""
StockEntry model.

StockEntry = one line of a resource's append-only stock ledger.

Stock Calculation:
- Movements = COMPLETED entries that are not claims (INCREASE, DECREASE, RETURN)
- A claim writes two lines: DECREASE (-q, completed) + CLAIM (+q, pending)
- Available at t = Σ movements effective at t + Σ pending claims NOT active at t
- Claimed at t = Σ pending claims active at t

Expired claims stop counting against availability by themselves: the
point-in-time filter adds them back once `ends_at` has passed, whether or
not release_expired() ever ran.
"""

import logging
import sys

from django.db import models, transaction
from django.db.models import Q, Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from bookman.exceptions import BookError

logger = logging.getLogger(__name__)

# Sentinel for resources that do not manage stock
UNLIMITED = sys.maxsize


class StockEntryKind(models.TextChoices):
    """Ledger entry kind."""

    INCREASE = "increase", _("Entrada")
    DECREASE = "decrease", _("Saída")
    CLAIM = "claim", _("Reserva")
    RETURN = "return", _("Devolução")


class StockEntryStatus(models.TextChoices):
    """Ledger entry status."""

    PENDING = "pending", _("Pendente")
    COMPLETED = "completed", _("Concluído")


class StockEntryQuerySet(models.QuerySet):
    """Filters used to derive availability from the ledger."""

    def movements(self):
        """Physical stock changes (everything completed except claims)."""
        return self.filter(status=StockEntryStatus.COMPLETED).exclude(
            kind=StockEntryKind.CLAIM
        )

    def claims(self):
        return self.filter(kind=StockEntryKind.CLAIM)

    def pending(self):
        return self.filter(status=StockEntryStatus.PENDING)

    def effective_at(self, instant):
        """Entries not yet expired at `instant`."""
        return self.filter(Q(ends_at__isnull=True) | Q(ends_at__gt=instant))

    def active_at(self, instant):
        """Entries whose window contains `instant`."""
        return self.filter(
            Q(starts_at__isnull=True) | Q(starts_at__lte=instant),
            Q(ends_at__isnull=True) | Q(ends_at__gt=instant),
        )

    def inactive_at(self, instant):
        """Entries not started yet or already expired at `instant`."""
        return self.filter(
            Q(starts_at__isnull=False, starts_at__gt=instant)
            | Q(ends_at__isnull=False, ends_at__lte=instant)
        )

    def overlapping(self, window):
        """Entries whose window overlaps `window` (half-open on both sides)."""
        conditions = Q()
        if window.ends_at is not None:
            conditions &= Q(starts_at__isnull=True) | Q(starts_at__lt=window.ends_at)
        if window.starts_at is not None:
            conditions &= Q(ends_at__isnull=True) | Q(ends_at__gt=window.starts_at)
        return self.filter(conditions)

    def expired(self, instant):
        """Pending claims whose window already closed."""
        return self.claims().pending().filter(ends_at__isnull=False, ends_at__lte=instant)

    def for_reference(self, reference: str):
        return self.filter(reference=reference)

    def total(self) -> int:
        return self.aggregate(total=Sum("quantity"))["total"] or 0


class StockEntry(models.Model):
    """
    Linha do ledger de estoque.

    Append-only: after insert only `status` and `released_at` may change
    (a pending claim becoming completed). Never deleted.
    """

    resource = models.ForeignKey(
        "bookman.Resource",
        on_delete=models.PROTECT,
        related_name="stock_entries",
        verbose_name=_("Recurso"),
    )
    quantity = models.IntegerField(
        verbose_name=_("Quantidade"),
        help_text=_("Positivo = entrada, negativo = saída"),
    )
    kind = models.CharField(
        max_length=20,
        choices=StockEntryKind.choices,
        db_index=True,
        verbose_name=_("Tipo"),
    )
    status = models.CharField(
        max_length=20,
        choices=StockEntryStatus.choices,
        default=StockEntryStatus.COMPLETED,
        db_index=True,
        verbose_name=_("Status"),
    )

    # Window [starts_at, ends_at)
    starts_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_("Início"),
    )
    ends_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_("Fim"),
        help_text=_("Vazio = permanente"),
    )

    note = models.CharField(max_length=255, blank=True, verbose_name=_("Observação"))
    reference = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        verbose_name=_("Referência"),
        help_text=_("Ex: 'cart:<uuid>', 'order:123'"),
    )
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_("Metadados"))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("criado em"))
    released_at = models.DateTimeField(null=True, blank=True, verbose_name=_("liberado em"))

    objects = StockEntryQuerySet.as_manager()

    class Meta:
        db_table = "bookman_stock_entry"
        verbose_name = _("Movimento de Estoque")
        verbose_name_plural = _("Movimentos de Estoque")
        ordering = ["created_at", "pk"]
        indexes = [
            models.Index(fields=["resource", "kind", "status"], name="bookman_sto_resourc_5c1f0e_idx"),
            models.Index(fields=["status", "ends_at"], name="bookman_sto_status_8b7d2a_idx"),
        ]

    _MUTABLE_FIELDS = {"status", "released_at"}

    def __str__(self) -> str:
        return f"{self.get_kind_display()} {self.quantity:+d} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if not update_fields or not set(update_fields) <= self._MUTABLE_FIELDS:
                raise BookError("LEDGER_IMMUTABLE", entry=self.pk)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise BookError("LEDGER_IMMUTABLE", entry=self.pk)

    # ══════════════════════════════════════════════════════════════
    # CLAIM LIFECYCLE
    # ══════════════════════════════════════════════════════════════

    @property
    def is_claim(self) -> bool:
        return self.kind == StockEntryKind.CLAIM

    @property
    def is_pending(self) -> bool:
        return self.status == StockEntryStatus.PENDING

    @property
    def is_permanent(self) -> bool:
        return self.ends_at is None

    def is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        return self.is_claim and self.is_pending and self.ends_at is not None and self.ends_at <= now

    def is_active(self, now=None) -> bool:
        """Pending claim whose window contains `now`."""
        if not (self.is_claim and self.is_pending):
            return False
        now = now or timezone.now()
        if self.starts_at is not None and self.starts_at > now:
            return False
        return self.ends_at is None or self.ends_at > now

    def release(self, now=None, reason: str = "released") -> bool:
        """
        Libera a reserva, devolvendo o estoque.

        Writes a completed RETURN line that reverses the claim's decrease
        and flips the claim to completed. Idempotent: returns False when
        the claim is no longer pending (or this is not a claim).
        """
        if not self.is_claim:
            return False

        now = now or timezone.now()

        with transaction.atomic():
            # Re-read under lock so two releases cannot both return stock
            locked = StockEntry.objects.select_for_update().get(pk=self.pk)
            if locked.status != StockEntryStatus.PENDING:
                self.status = locked.status
                self.released_at = locked.released_at
                return False

            StockEntry.objects.create(
                resource_id=self.resource_id,
                quantity=self.quantity,
                kind=StockEntryKind.RETURN,
                status=StockEntryStatus.COMPLETED,
                note=f"Release of claim #{self.pk} ({reason})",
                reference=self.reference,
            )

            self.status = StockEntryStatus.COMPLETED
            self.released_at = now
            self.save(update_fields=["status", "released_at"])

        logger.info(
            f"Released claim #{self.pk} ({self.quantity} of resource {self.resource_id})",
            extra={
                "claim": self.pk,
                "resource": self.resource_id,
                "quantity": self.quantity,
                "reason": reason,
            },
        )

        from bookman.signals import claim_released

        claim_released.send(
            sender=StockEntry, claim=self, resource=self.resource, reason=reason
        )
        return True

    @classmethod
    def release_expired(cls, now=None, resource=None) -> int:
        """
        Sweep pending claims whose window has closed.

        Best-effort and safe to run redundantly: availability already
        ignores expired claims, this only makes the ledger say so.
        """
        now = now or timezone.now()
        qs = cls.objects.expired(now)
        if resource is not None:
            qs = qs.filter(resource=resource)

        count = 0
        for claim in qs.order_by("pk"):
            if claim.release(now=now, reason="expired"):
                count += 1

        if count:
            logger.info(f"Released {count} expired claim(s)", extra={"released": count})
        return count

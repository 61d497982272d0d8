"""
Initial migration for Bookman.

Creates:
- Resource, Pool, PoolMembership (+ history for Resource and Pool)
- StockEntry (append-only ledger, no history)
- Cart, CartItem (+ history for Cart)
"""

import uuid

import django.db.models.deletion
import simple_history.models
from django.conf import settings
from django.db import migrations, models

import bookman.models.resource


HISTORY_FIELDS = [
    ("history_id", models.AutoField(primary_key=True, serialize=False)),
    ("history_date", models.DateTimeField(db_index=True)),
    ("history_change_reason", models.CharField(max_length=100, null=True)),
    (
        "history_type",
        models.CharField(
            choices=[("+", "Created"), ("~", "Changed"), ("-", "Deleted")],
            max_length=1,
        ),
    ),
]

KIND_CHOICES = [("simple", "Simples"), ("booking", "Reserva por período")]
STRATEGY_CHOICES = [
    ("lowest", "Menor preço"),
    ("highest", "Maior preço"),
    ("average", "Preço médio"),
]
CART_STATUS_CHOICES = [
    ("active", "Ativo"),
    ("converted", "Convertido"),
    ("abandoned", "Abandonado"),
]


def history_user():
    return (
        "history_user",
        models.ForeignKey(
            null=True,
            on_delete=django.db.models.deletion.SET_NULL,
            related_name="+",
            to=settings.AUTH_USER_MODEL,
        ),
    )


def history_options(verbose_name, verbose_name_plural):
    return {
        "verbose_name": f"historical {verbose_name}",
        "verbose_name_plural": f"historical {verbose_name_plural}",
        "ordering": ("-history_date", "-history_id"),
        "get_latest_by": ("history_date", "history_id"),
    }


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ══════════════════════════════════════════════════════════════
        # RESOURCE
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="Resource",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, unique=True, verbose_name="UUID"
                    ),
                ),
                ("code", models.SlugField(unique=True, verbose_name="Código")),
                ("name", models.CharField(max_length=200, verbose_name="Nome")),
                (
                    "kind",
                    models.CharField(
                        choices=KIND_CHOICES,
                        default="simple",
                        help_text="Recursos de reserva exigem período (início e fim)",
                        max_length=20,
                        verbose_name="Tipo",
                    ),
                ),
                (
                    "manages_stock",
                    models.BooleanField(default=True, verbose_name="Controla estoque"),
                ),
                (
                    "price_q",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Preço por período para recursos de reserva",
                        null=True,
                        verbose_name="Preço (centavos)",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadados")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
            ],
            options={
                "verbose_name": "Recurso",
                "verbose_name_plural": "Recursos",
                "db_table": "bookman_resource",
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="HistoricalResource",
            fields=[
                (
                    "id",
                    models.BigIntegerField(
                        auto_created=True, blank=True, db_index=True, verbose_name="ID"
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        db_index=True, default=uuid.uuid4, editable=False, verbose_name="UUID"
                    ),
                ),
                ("code", models.SlugField(verbose_name="Código")),
                ("name", models.CharField(max_length=200, verbose_name="Nome")),
                (
                    "kind",
                    models.CharField(
                        choices=KIND_CHOICES,
                        default="simple",
                        help_text="Recursos de reserva exigem período (início e fim)",
                        max_length=20,
                        verbose_name="Tipo",
                    ),
                ),
                (
                    "manages_stock",
                    models.BooleanField(default=True, verbose_name="Controla estoque"),
                ),
                (
                    "price_q",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Preço por período para recursos de reserva",
                        null=True,
                        verbose_name="Preço (centavos)",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadados")),
                ("created_at", models.DateTimeField(blank=True, editable=False, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(blank=True, editable=False, verbose_name="atualizado em")),
                *HISTORY_FIELDS,
                history_user(),
            ],
            options=history_options("Recurso", "Recursos"),
            bases=(simple_history.models.HistoricalChanges, models.Model),
        ),
        # ══════════════════════════════════════════════════════════════
        # POOL
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="Pool",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, unique=True, verbose_name="UUID"
                    ),
                ),
                ("code", models.SlugField(unique=True, verbose_name="Código")),
                ("name", models.CharField(max_length=200, verbose_name="Nome")),
                (
                    "strategy",
                    models.CharField(
                        choices=STRATEGY_CHOICES,
                        default=bookman.models.resource._default_strategy,
                        max_length=20,
                        verbose_name="Estratégia de preço",
                    ),
                ),
                (
                    "price_q",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Usado para membros sem preço",
                        null=True,
                        verbose_name="Preço próprio (centavos)",
                    ),
                ),
                (
                    "manages_stock",
                    models.BooleanField(
                        default=False,
                        help_text="Ignorado quando algum membro controla o próprio estoque",
                        verbose_name="Controla estoque",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadados")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
            ],
            options={
                "verbose_name": "Pool",
                "verbose_name_plural": "Pools",
                "db_table": "bookman_pool",
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="HistoricalPool",
            fields=[
                (
                    "id",
                    models.BigIntegerField(
                        auto_created=True, blank=True, db_index=True, verbose_name="ID"
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        db_index=True, default=uuid.uuid4, editable=False, verbose_name="UUID"
                    ),
                ),
                ("code", models.SlugField(verbose_name="Código")),
                ("name", models.CharField(max_length=200, verbose_name="Nome")),
                (
                    "strategy",
                    models.CharField(
                        choices=STRATEGY_CHOICES,
                        default=bookman.models.resource._default_strategy,
                        max_length=20,
                        verbose_name="Estratégia de preço",
                    ),
                ),
                (
                    "price_q",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Usado para membros sem preço",
                        null=True,
                        verbose_name="Preço próprio (centavos)",
                    ),
                ),
                (
                    "manages_stock",
                    models.BooleanField(
                        default=False,
                        help_text="Ignorado quando algum membro controla o próprio estoque",
                        verbose_name="Controla estoque",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadados")),
                ("created_at", models.DateTimeField(blank=True, editable=False, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(blank=True, editable=False, verbose_name="atualizado em")),
                *HISTORY_FIELDS,
                history_user(),
            ],
            options=history_options("Pool", "Pools"),
            bases=(simple_history.models.HistoricalChanges, models.Model),
        ),
        migrations.CreateModel(
            name="PoolMembership",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("sort_order", models.PositiveIntegerField(default=0, verbose_name="Ordem")),
                (
                    "pool",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="bookman.pool",
                        verbose_name="Pool",
                    ),
                ),
                (
                    "resource",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="bookman.resource",
                        verbose_name="Recurso",
                    ),
                ),
            ],
            options={
                "verbose_name": "Membro do Pool",
                "verbose_name_plural": "Membros do Pool",
                "db_table": "bookman_pool_membership",
                "ordering": ["sort_order", "pk"],
            },
        ),
        migrations.AddConstraint(
            model_name="poolmembership",
            constraint=models.UniqueConstraint(
                fields=("pool", "resource"), name="bookman_unique_pool_member"
            ),
        ),
        migrations.AddField(
            model_name="pool",
            name="members",
            field=models.ManyToManyField(
                related_name="pools",
                through="bookman.PoolMembership",
                to="bookman.resource",
                verbose_name="Membros",
            ),
        ),
        # ══════════════════════════════════════════════════════════════
        # STOCK LEDGER
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="StockEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "quantity",
                    models.IntegerField(
                        help_text="Positivo = entrada, negativo = saída",
                        verbose_name="Quantidade",
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("increase", "Entrada"),
                            ("decrease", "Saída"),
                            ("claim", "Reserva"),
                            ("return", "Devolução"),
                        ],
                        db_index=True,
                        max_length=20,
                        verbose_name="Tipo",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pendente"), ("completed", "Concluído")],
                        db_index=True,
                        default="completed",
                        max_length=20,
                        verbose_name="Status",
                    ),
                ),
                (
                    "starts_at",
                    models.DateTimeField(blank=True, db_index=True, null=True, verbose_name="Início"),
                ),
                (
                    "ends_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Vazio = permanente",
                        null=True,
                        verbose_name="Fim",
                    ),
                ),
                ("note", models.CharField(blank=True, max_length=255, verbose_name="Observação")),
                (
                    "reference",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Ex: 'cart:<uuid>', 'order:123'",
                        max_length=255,
                        verbose_name="Referência",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadados")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                (
                    "released_at",
                    models.DateTimeField(blank=True, null=True, verbose_name="liberado em"),
                ),
                (
                    "resource",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_entries",
                        to="bookman.resource",
                        verbose_name="Recurso",
                    ),
                ),
            ],
            options={
                "verbose_name": "Movimento de Estoque",
                "verbose_name_plural": "Movimentos de Estoque",
                "db_table": "bookman_stock_entry",
                "ordering": ["created_at", "pk"],
                "indexes": [
                    models.Index(
                        fields=["resource", "kind", "status"],
                        name="bookman_sto_resourc_5c1f0e_idx",
                    ),
                    models.Index(
                        fields=["status", "ends_at"],
                        name="bookman_sto_status_8b7d2a_idx",
                    ),
                ],
            },
        ),
        # ══════════════════════════════════════════════════════════════
        # CART
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="Cart",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, unique=True, verbose_name="UUID"
                    ),
                ),
                (
                    "session_key",
                    models.CharField(blank=True, db_index=True, max_length=64, verbose_name="Sessão"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=CART_STATUS_CHOICES,
                        db_index=True,
                        default="active",
                        max_length=20,
                        verbose_name="Status",
                    ),
                ),
                ("starts_at", models.DateTimeField(blank=True, null=True, verbose_name="Início")),
                ("ends_at", models.DateTimeField(blank=True, null=True, verbose_name="Fim")),
                ("expires_at", models.DateTimeField(blank=True, null=True, verbose_name="Expira em")),
                (
                    "converted_at",
                    models.DateTimeField(blank=True, null=True, verbose_name="convertido em"),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadados")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
            ],
            options={
                "verbose_name": "Carrinho",
                "verbose_name_plural": "Carrinhos",
                "db_table": "bookman_cart",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="HistoricalCart",
            fields=[
                (
                    "id",
                    models.BigIntegerField(
                        auto_created=True, blank=True, db_index=True, verbose_name="ID"
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        db_index=True, default=uuid.uuid4, editable=False, verbose_name="UUID"
                    ),
                ),
                (
                    "session_key",
                    models.CharField(blank=True, db_index=True, max_length=64, verbose_name="Sessão"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=CART_STATUS_CHOICES,
                        db_index=True,
                        default="active",
                        max_length=20,
                        verbose_name="Status",
                    ),
                ),
                ("starts_at", models.DateTimeField(blank=True, null=True, verbose_name="Início")),
                ("ends_at", models.DateTimeField(blank=True, null=True, verbose_name="Fim")),
                ("expires_at", models.DateTimeField(blank=True, null=True, verbose_name="Expira em")),
                (
                    "converted_at",
                    models.DateTimeField(blank=True, null=True, verbose_name="convertido em"),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadados")),
                ("created_at", models.DateTimeField(blank=True, editable=False, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(blank=True, editable=False, verbose_name="atualizado em")),
                *HISTORY_FIELDS,
                history_user(),
            ],
            options=history_options("Carrinho", "Carrinhos"),
            bases=(simple_history.models.HistoricalChanges, models.Model),
        ),
        migrations.CreateModel(
            name="CartItem",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("quantity", models.PositiveIntegerField(default=1, verbose_name="Quantidade")),
                (
                    "unit_price_q",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Vazio = sem preço (item indisponível)",
                        null=True,
                        verbose_name="Preço unitário (centavos)",
                    ),
                ),
                ("starts_at", models.DateTimeField(blank=True, null=True, verbose_name="Início")),
                ("ends_at", models.DateTimeField(blank=True, null=True, verbose_name="Fim")),
                ("parameters", models.JSONField(blank=True, default=dict, verbose_name="Parâmetros")),
                ("is_available", models.BooleanField(default=True, verbose_name="Disponível")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
                (
                    "assigned_resource",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assigned_cart_items",
                        to="bookman.resource",
                        verbose_name="Recurso alocado",
                    ),
                ),
                (
                    "cart",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="bookman.cart",
                        verbose_name="Carrinho",
                    ),
                ),
                (
                    "pool",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="cart_items",
                        to="bookman.pool",
                        verbose_name="Pool",
                    ),
                ),
                (
                    "resource",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="cart_items",
                        to="bookman.resource",
                        verbose_name="Recurso",
                    ),
                ),
            ],
            options={
                "verbose_name": "Item do Carrinho",
                "verbose_name_plural": "Itens do Carrinho",
                "db_table": "bookman_cart_item",
                "ordering": ["created_at", "pk"],
            },
        ),
    ]

from alembic import op
import sqlalchemy as sa


revision = "20261018_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=80), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "registries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("baby_name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("slug", sa.String(length=160), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("visitor_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("visitor_count >= 0", name="ck_registries_visitor_count_non_negative"),
    )
    op.create_index("ix_registries_user_id", "registries", ["user_id"])
    op.create_index("ix_registries_slug", "registries", ["slug"], unique=True)

    op.create_table(
        "gifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("registry_id", sa.Integer(), sa.ForeignKey("registries.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("image_url", sa.String(length=2048), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("store", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=120), nullable=False),
        sa.Column("is_hidden", sa.Boolean(), nullable=False),
        sa.Column("reserved_by", sa.String(length=320), nullable=True),
        sa.Column("reserved_by_name", sa.String(length=120), nullable=True),
        sa.Column("reservation_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_token", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(reserved_by IS NULL AND cancellation_token IS NULL AND reservation_date IS NULL)"
            " OR (reserved_by IS NOT NULL AND cancellation_token IS NOT NULL AND reservation_date IS NOT NULL)",
            name="ck_gifts_reservation_fields_together",
        ),
        sa.CheckConstraint("price >= 0", name="ck_gifts_price_non_negative"),
        sa.UniqueConstraint("cancellation_token"),
    )
    op.create_index("ix_gifts_registry_id", "gifts", ["registry_id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("gift_id", sa.Integer(), sa.ForeignKey("gifts.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("cancellation_token", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("cancellation_token"),
    )
    op.create_index("ix_reservations_gift_id", "reservations", ["gift_id"])

    op.create_table(
        "activities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("registry_id", sa.Integer(), sa.ForeignKey("registries.id"), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("user_display_name", sa.String(length=120), nullable=False),
        sa.Column("target_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_activities_registry_id", "activities", ["registry_id"])
    op.create_index("ix_activities_created_at", "activities", ["created_at"])


def downgrade() -> None:
    op.drop_table("activities")
    op.drop_table("reservations")
    op.drop_table("gifts")
    op.drop_table("registries")
    op.drop_table("users")

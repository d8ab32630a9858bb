"""Create canvass directory tables

Revision ID: 0001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="viewer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "contacts",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("system_id", sa.String(32), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("middle_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("street_address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(2), nullable=True),
        sa.Column("zip_code", sa.String(10), nullable=True),
        sa.Column("voter_status", sa.String(20), nullable=True),
        sa.Column("registration_date", sa.Date(), nullable=True),
        sa.Column("district", sa.String(50), nullable=True),
        sa.Column("precinct", sa.String(50), nullable=True),
        sa.Column("party", sa.String(20), nullable=True),
        sa.Column(
            "supporter_status", sa.String(30), nullable=False, server_default="unknown"
        ),
        sa.Column(
            "volunteer_status", sa.String(30), nullable=False, server_default="unknown"
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=False),
        sa.Column("last_updated_by", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("system_id"),
    )

    # Indexes for search: case-insensitive name lookups, recency ordering, filters
    op.create_index(
        "idx_contacts_last_first_name", "contacts", ["last_name", "first_name"]
    )
    op.create_index(
        "idx_contacts_lower_first_name", "contacts", [sa.text("lower(first_name)")]
    )
    op.create_index(
        "idx_contacts_lower_middle_name", "contacts", [sa.text("lower(middle_name)")]
    )
    op.create_index(
        "idx_contacts_lower_last_name", "contacts", [sa.text("lower(last_name)")]
    )
    op.create_index("idx_contacts_updated_at", "contacts", ["updated_at"])
    op.create_index("idx_contacts_zip_code", "contacts", ["zip_code"])
    op.create_index("idx_contacts_supporter_status", "contacts", ["supporter_status"])

    op.create_table(
        "contact_aliases",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("contact_id", sa.String(64), nullable=False),
        sa.Column("alias", sa.String(100), nullable=False),
        _timestamp("created_at"),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_contact_aliases_contact_id", "contact_aliases", ["contact_id"]
    )
    op.create_index(
        "idx_contact_aliases_lower_alias", "contact_aliases", [sa.text("lower(alias)")]
    )

    for table, value_column, type_column, type_default in (
        ("contact_phones", "phone_number", "phone_type", "mobile"),
        ("contact_emails", "email", "email_type", "personal"),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.String(64), nullable=False),
            sa.Column("contact_id", sa.String(64), nullable=False),
            sa.Column(
                value_column,
                sa.String(30 if value_column == "phone_number" else 255),
                nullable=False,
            ),
            sa.Column(
                type_column, sa.String(10), nullable=False, server_default=type_default
            ),
            sa.Column(
                "is_primary", sa.Boolean(), nullable=False, server_default=sa.false()
            ),
            sa.Column(
                "is_manually_added",
                sa.Boolean(),
                nullable=False,
                server_default=sa.true(),
            ),
            _timestamp("created_at"),
            sa.Column("created_by", sa.String(64), nullable=True),
            sa.ForeignKeyConstraint(
                ["contact_id"], ["contacts.id"], ondelete="CASCADE"
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_contact_id", table, ["contact_id"])
        # At most one primary row per contact
        op.create_index(
            f"uq_{table}_primary",
            table,
            ["contact_id"],
            unique=True,
            postgresql_where=sa.text("is_primary"),
            sqlite_where=sa.text("is_primary = 1"),
        )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("contact_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
        sa.Column("table_name", sa.String(50), nullable=False),
        sa.Column("record_id", sa.String(64), nullable=False),
        sa.Column("field_name", sa.String(50), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("reverts_entry_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        _timestamp("created_at", nullable=False),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_audit_logs_contact_created", "audit_logs", ["contact_id", "created_at"]
    )
    op.create_index(
        "idx_audit_logs_target", "audit_logs", ["table_name", "record_id", "field_name"]
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_index("idx_audit_logs_target", table_name="audit_logs")
    op.drop_index("idx_audit_logs_contact_created", table_name="audit_logs")
    op.drop_table("audit_logs")

    for table in ("contact_emails", "contact_phones"):
        op.drop_index(f"uq_{table}_primary", table_name=table)
        op.drop_index(f"ix_{table}_contact_id", table_name=table)
        op.drop_table(table)

    op.drop_index("idx_contact_aliases_lower_alias", table_name="contact_aliases")
    op.drop_index("ix_contact_aliases_contact_id", table_name="contact_aliases")
    op.drop_table("contact_aliases")

    op.drop_index("idx_contacts_supporter_status", table_name="contacts")
    op.drop_index("idx_contacts_zip_code", table_name="contacts")
    op.drop_index("idx_contacts_updated_at", table_name="contacts")
    op.drop_index("idx_contacts_lower_last_name", table_name="contacts")
    op.drop_index("idx_contacts_lower_middle_name", table_name="contacts")
    op.drop_index("idx_contacts_lower_first_name", table_name="contacts")
    op.drop_index("idx_contacts_last_first_name", table_name="contacts")
    op.drop_table("contacts")

    op.drop_table("users")

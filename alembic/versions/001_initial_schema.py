"""Initial schema: users, children, rooms, messages.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    # Users (parents and admins)
    op.execute("""
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            email TEXT NOT NULL,
            phone_number TEXT,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'PARENT' CHECK (role IN ('ADMIN', 'PARENT')),
            status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (status IN ('ACTIVE', 'INACTIVE', 'SUSPENDED')),
            avatar_url TEXT,
            is_verified BOOLEAN NOT NULL DEFAULT false,
            verification_code TEXT,
            verification_code_expires_at TIMESTAMPTZ,
            verification_channel TEXT CHECK (verification_channel IN ('email', 'sms')),
            password_reset_code TEXT,
            password_reset_expires_at TIMESTAMPTZ,
            last_code_sent_at TIMESTAMPTZ,
            google_id TEXT,
            additional_attributes JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # Case-insensitive uniqueness on email
    op.execute("CREATE UNIQUE INDEX idx_users_email_lower ON users (lower(email));")
    op.execute("CREATE INDEX idx_users_phone ON users (phone_number);")
    op.execute("CREATE INDEX idx_users_google_id ON users (google_id);")

    # Children. Deleting a user that is still a main parent is refused.
    op.execute("""
        CREATE TABLE children (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            parent_id UUID NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            date_of_birth DATE,
            gender TEXT CHECK (gender IN ('MALE', 'FEMALE', 'OTHER')),
            avatar_url TEXT,
            location_lat DOUBLE PRECISION,
            location_lng DOUBLE PRECISION,
            location_updated_at TIMESTAMPTZ,
            device_info JSONB NOT NULL DEFAULT '{}'::jsonb,
            is_online BOOLEAN NOT NULL DEFAULT false,
            status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (status IN ('ACTIVE', 'INACTIVE')),
            qr_code TEXT UNIQUE,
            additional_attributes JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("CREATE INDEX idx_children_parent ON children (parent_id);")

    op.execute("""
        CREATE TABLE child_linked_parents (
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (child_id, user_id)
        );
    """)

    op.execute("CREATE INDEX idx_child_linked_parents_user ON child_linked_parents (user_id);")

    # Rooms: one per parent-child pair, and one per child
    op.execute("""
        CREATE TABLE rooms (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            parent_id UUID NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            is_active BOOLEAN NOT NULL DEFAULT true,
            last_message_text TEXT,
            last_message_type TEXT,
            last_message_sender_kind TEXT CHECK (last_message_sender_kind IN ('PARENT_SIDE', 'CHILD_SIDE')),
            last_message_sender_id UUID,
            last_message_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT rooms_parent_child_key UNIQUE (parent_id, child_id),
            CONSTRAINT rooms_child_key UNIQUE (child_id)
        );
    """)

    op.execute("CREATE INDEX idx_rooms_parent ON rooms (parent_id);")
    op.execute("CREATE INDEX idx_rooms_last_message_at ON rooms (last_message_at DESC NULLS LAST);")

    op.execute("""
        CREATE TABLE room_invited_parents (
            room_id UUID NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (room_id, user_id)
        );
    """)

    op.execute("CREATE INDEX idx_room_invited_parents_user ON room_invited_parents (user_id);")

    # Messages: append-only, ordered by seq
    op.execute("""
        CREATE TABLE messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            seq BIGINT GENERATED ALWAYS AS IDENTITY UNIQUE,
            room_id UUID NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
            sender_kind TEXT NOT NULL CHECK (sender_kind IN ('PARENT_SIDE', 'CHILD_SIDE')),
            sender_id UUID NOT NULL,
            type TEXT NOT NULL CHECK (type IN ('TEXT', 'AUDIO', 'CALL_OFFER', 'CALL_ANSWER', 'ICE_CANDIDATE')),
            text TEXT,
            audio JSONB,
            signaling_payload JSONB,
            is_delivered BOOLEAN NOT NULL DEFAULT false,
            is_read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("CREATE INDEX idx_messages_room_seq ON messages (room_id, seq DESC);")
    op.execute("CREATE INDEX idx_messages_room_type ON messages (room_id, type);")


def downgrade():
    op.execute("DROP TABLE IF EXISTS messages;")
    op.execute("DROP TABLE IF EXISTS room_invited_parents;")
    op.execute("DROP TABLE IF EXISTS rooms;")
    op.execute("DROP TABLE IF EXISTS child_linked_parents;")
    op.execute("DROP TABLE IF EXISTS children;")
    op.execute("DROP TABLE IF EXISTS users;")

"""Initial schema - contacts, conversations, leads, tasks and the outbound queue

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17

Creates every table of the message pipeline. Uniqueness constraints here are
the pipeline's idempotency mechanism; do not relax them.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create pipeline tables."""

    # ==========================================================================
    # Contacts
    # ==========================================================================
    op.execute('''
        CREATE TABLE contacts (
            id UUID PRIMARY KEY,
            full_name VARCHAR(255),
            phone VARCHAR(50),
            phone_normalized VARCHAR(20),
            email VARCHAR(255),
            wa_id VARCHAR(50),
            nationality VARCHAR(100),
            source VARCHAR(50),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE UNIQUE INDEX uq_contacts_phone_normalized
        ON contacts(phone_normalized) WHERE phone_normalized IS NOT NULL
    ''')
    op.execute('CREATE UNIQUE INDEX uq_contacts_email ON contacts(email) WHERE email IS NOT NULL')
    op.execute('CREATE UNIQUE INDEX uq_contacts_wa_id ON contacts(wa_id) WHERE wa_id IS NOT NULL')

    # ==========================================================================
    # Leads
    # ==========================================================================
    op.execute('''
        CREATE TABLE leads (
            id UUID PRIMARY KEY,
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            stage VARCHAR(30) NOT NULL DEFAULT 'new',
            service_type VARCHAR(50),
            requested_service_raw TEXT,
            expiry_date DATE,
            data_json JSONB NOT NULL DEFAULT '{}',
            last_contact_channel VARCHAR(30),
            last_inbound_at TIMESTAMPTZ,
            last_touched_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_leads_contact_touched ON leads(contact_id, last_touched_at)')

    # ==========================================================================
    # Conversations and messages
    # ==========================================================================
    op.execute('''
        CREATE TABLE inbound_dedup_records (
            id UUID PRIMARY KEY,
            channel VARCHAR(30) NOT NULL,
            dedup_key VARCHAR(255) NOT NULL,
            key_kind VARCHAR(20) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_inbound_dedup_channel_key UNIQUE (channel, dedup_key)
        )
    ''')

    op.execute('''
        CREATE TABLE conversations (
            id UUID PRIMARY KEY,
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            channel VARCHAR(30) NOT NULL,
            lead_id UUID REFERENCES leads(id) ON DELETE SET NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'open',
            assigned_user_id UUID,
            last_question_key VARCHAR(100),
            last_inbound_at TIMESTAMPTZ,
            last_outbound_at TIMESTAMPTZ,
            last_message_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_conversations_contact_channel UNIQUE (contact_id, channel)
        )
    ''')
    op.execute('CREATE INDEX idx_conversations_lead ON conversations(lead_id)')

    op.execute('''
        CREATE TABLE messages (
            id UUID PRIMARY KEY,
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            lead_id UUID REFERENCES leads(id) ON DELETE SET NULL,
            contact_id UUID REFERENCES contacts(id) ON DELETE SET NULL,
            direction VARCHAR(10) NOT NULL,
            channel VARCHAR(30) NOT NULL,
            message_type VARCHAR(20) NOT NULL,
            status VARCHAR(20) NOT NULL,
            body TEXT,
            provider_message_id VARCHAR(255),
            outbound_job_id UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE UNIQUE INDEX uq_messages_conversation_provider_id
        ON messages(conversation_id, provider_message_id)
        WHERE provider_message_id IS NOT NULL
    ''')
    op.execute('CREATE INDEX idx_messages_provider_id ON messages(channel, provider_message_id)')
    op.execute('CREATE INDEX idx_messages_conversation_created ON messages(conversation_id, created_at)')

    # ==========================================================================
    # Expiry tracking
    # ==========================================================================
    op.execute('''
        CREATE TABLE expiry_items (
            id UUID PRIMARY KEY,
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            lead_id UUID REFERENCES leads(id) ON DELETE SET NULL,
            item_type VARCHAR(50) NOT NULL,
            expiry_date DATE NOT NULL,
            reminder_schedule_days JSONB NOT NULL DEFAULT '[90, 60, 30, 7, 3, 1]',
            reminders_enabled BOOLEAN NOT NULL DEFAULT TRUE,
            renewal_status VARCHAR(20) NOT NULL DEFAULT 'pending',
            last_reminder_at TIMESTAMPTZ,
            last_reminder_stage VARCHAR(20),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_expiry_items_contact_type_date UNIQUE (contact_id, item_type, expiry_date)
        )
    ''')
    op.execute('CREATE INDEX idx_expiry_items_due ON expiry_items(renewal_status, expiry_date)')

    # ==========================================================================
    # Tasks and notifications
    # ==========================================================================
    op.execute('''
        CREATE TABLE tasks (
            id UUID PRIMARY KEY,
            idempotency_key VARCHAR(255) NOT NULL,
            title VARCHAR(255) NOT NULL,
            description TEXT,
            task_type VARCHAR(50) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'open',
            due_at TIMESTAMPTZ,
            lead_id UUID REFERENCES leads(id) ON DELETE CASCADE,
            conversation_id UUID REFERENCES conversations(id) ON DELETE SET NULL,
            expiry_item_id UUID REFERENCES expiry_items(id) ON DELETE SET NULL,
            completed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE UNIQUE INDEX uq_tasks_idempotency_key ON tasks(idempotency_key)')
    op.execute("CREATE INDEX idx_tasks_open_due ON tasks(status, due_at) WHERE status = 'open'")
    op.execute('CREATE INDEX idx_tasks_lead ON tasks(lead_id)')

    op.execute('''
        CREATE TABLE notifications (
            id UUID PRIMARY KEY,
            dedupe_key VARCHAR(255),
            notification_type VARCHAR(50) NOT NULL,
            title VARCHAR(255) NOT NULL,
            body TEXT,
            lead_id UUID REFERENCES leads(id) ON DELETE CASCADE,
            conversation_id UUID REFERENCES conversations(id) ON DELETE SET NULL,
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE UNIQUE INDEX uq_notifications_dedupe_key
        ON notifications(dedupe_key) WHERE dedupe_key IS NOT NULL
    ''')
    op.execute('CREATE INDEX idx_notifications_unread ON notifications(read_at, created_at)')

    # ==========================================================================
    # Outbound queue
    # ==========================================================================
    op.execute('''
        CREATE TABLE outbound_jobs (
            id UUID PRIMARY KEY,
            kind VARCHAR(20) NOT NULL DEFAULT 'auto_reply',
            idempotency_key VARCHAR(255) NOT NULL,
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            trigger_message_id UUID REFERENCES messages(id) ON DELETE SET NULL,
            trigger_provider_message_id VARCHAR(255),
            question_key VARCHAR(100) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 5,
            run_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            claimed_at TIMESTAMPTZ,
            last_attempt_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            content TEXT,
            template_name VARCHAR(100),
            template_params JSONB,
            error VARCHAR(500),
            error_log JSONB,
            skip_reason VARCHAR(50),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE UNIQUE INDEX uq_outbound_jobs_idempotency_key ON outbound_jobs(idempotency_key)')
    op.execute('''
        CREATE INDEX idx_outbound_jobs_claimable ON outbound_jobs(status, run_at)
        WHERE status IN ('pending', 'ready_to_send')
    ''')
    op.execute('CREATE INDEX idx_outbound_jobs_conversation ON outbound_jobs(conversation_id, created_at)')

    op.execute('''
        CREATE TABLE outbound_message_logs (
            id UUID PRIMARY KEY,
            dedupe_key VARCHAR(64) NOT NULL,
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            outbound_job_id UUID,
            trigger_provider_message_id VARCHAR(255),
            question_key VARCHAR(100) NOT NULL,
            status VARCHAR(20) NOT NULL,
            provider_message_id VARCHAR(255),
            error VARCHAR(500),
            sent_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE UNIQUE INDEX uq_outbound_message_logs_dedupe_key
        ON outbound_message_logs(dedupe_key)
    ''')

    # ==========================================================================
    # Automation ledger
    # ==========================================================================
    op.execute('''
        CREATE TABLE automation_run_logs (
            id UUID PRIMARY KEY,
            action_key VARCHAR(255) NOT NULL,
            rule VARCHAR(50) NOT NULL,
            action VARCHAR(50) NOT NULL,
            run_date DATE NOT NULL,
            status VARCHAR(20) NOT NULL,
            lead_id UUID REFERENCES leads(id) ON DELETE SET NULL,
            contact_id UUID REFERENCES contacts(id) ON DELETE SET NULL,
            details JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE UNIQUE INDEX uq_automation_run_logs_action_key ON automation_run_logs(action_key)')
    op.execute('CREATE INDEX idx_automation_run_logs_rule_date ON automation_run_logs(rule, run_date)')


def downgrade() -> None:
    """Drop pipeline tables."""
    for table in (
        'automation_run_logs',
        'outbound_message_logs',
        'outbound_jobs',
        'notifications',
        'tasks',
        'expiry_items',
        'messages',
        'conversations',
        'inbound_dedup_records',
        'leads',
        'contacts',
    ):
        op.execute(f'DROP TABLE IF EXISTS {table} CASCADE')

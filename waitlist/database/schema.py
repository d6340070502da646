# waitlist/database/schema.py
import asyncpg
import logging

logger = logging.getLogger(__name__)

# Campaigns, segments, templates, waitlist users and email logs belong to
# other components; their ids are stored here without foreign keys.
TABLES_SQL = '''
    -- Prices (synced from billing)
    CREATE TABLE IF NOT EXISTS prices (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        description VARCHAR(100) NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        deleted_at TIMESTAMPTZ
    );

    -- Feature definitions
    CREATE TABLE IF NOT EXISTS features (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        name VARCHAR(100) UNIQUE NOT NULL,
        description TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        deleted_at TIMESTAMPTZ
    );

    -- Numeric limits attached to a feature
    CREATE TABLE IF NOT EXISTS limits (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        feature_id UUID NOT NULL REFERENCES features(id) ON DELETE CASCADE,
        limit_name VARCHAR(100) NOT NULL,
        limit_value INTEGER NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        deleted_at TIMESTAMPTZ
    );

    -- Which features (and limits) a price grants
    CREATE TABLE IF NOT EXISTS plan_feature_limits (
        plan_id UUID NOT NULL REFERENCES prices(id) ON DELETE CASCADE,
        feature_id UUID NOT NULL REFERENCES features(id) ON DELETE CASCADE,
        limit_id UUID REFERENCES limits(id) ON DELETE SET NULL,
        enabled BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        deleted_at TIMESTAMPTZ,
        PRIMARY KEY (plan_id, feature_id)
    );

    -- Subscriptions (synced from billing)
    CREATE TABLE IF NOT EXISTS subscriptions (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        user_id UUID NOT NULL,
        price_id UUID NOT NULL REFERENCES prices(id),
        status VARCHAR(20) NOT NULL,
        start_date TIMESTAMPTZ,
        end_date TIMESTAMPTZ,
        next_billing_date TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    );

    -- Accounts
    CREATE TABLE IF NOT EXISTS accounts (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        name VARCHAR(255) NOT NULL,
        owner_user_id UUID NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        deleted_at TIMESTAMPTZ
    );

    -- Email blasts
    CREATE TABLE IF NOT EXISTS email_blasts (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        campaign_id UUID NOT NULL,
        segment_id UUID NOT NULL,
        template_id UUID NOT NULL,
        name VARCHAR(255) NOT NULL,
        subject VARCHAR(255) NOT NULL,
        scheduled_at TIMESTAMPTZ,
        started_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        status VARCHAR(20) NOT NULL DEFAULT 'draft' CHECK (status IN (
            'draft', 'scheduled', 'processing', 'sending', 'paused',
            'completed', 'cancelled', 'failed'
        )),
        total_recipients INTEGER NOT NULL DEFAULT 0,
        sent_count INTEGER NOT NULL DEFAULT 0,
        delivered_count INTEGER NOT NULL DEFAULT 0,
        opened_count INTEGER NOT NULL DEFAULT 0,
        clicked_count INTEGER NOT NULL DEFAULT 0,
        bounced_count INTEGER NOT NULL DEFAULT 0,
        failed_count INTEGER NOT NULL DEFAULT 0,
        batch_size INTEGER NOT NULL DEFAULT 100 CHECK (batch_size > 0),
        current_batch INTEGER NOT NULL DEFAULT 0,
        last_batch_at TIMESTAMPTZ,
        error_message TEXT,
        send_throttle_per_second INTEGER,
        created_by UUID,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        deleted_at TIMESTAMPTZ
    );

    -- Blast recipients; clock_timestamp keeps bulk inserts in input order
    CREATE TABLE IF NOT EXISTS blast_recipients (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        blast_id UUID NOT NULL REFERENCES email_blasts(id) ON DELETE CASCADE,
        user_id UUID NOT NULL,
        email VARCHAR(255) NOT NULL,
        status VARCHAR(20) NOT NULL DEFAULT 'pending' CHECK (status IN (
            'pending', 'queued', 'sending', 'sent', 'delivered',
            'opened', 'clicked', 'bounced', 'failed'
        )),
        email_log_id UUID,
        queued_at TIMESTAMPTZ,
        sent_at TIMESTAMPTZ,
        delivered_at TIMESTAMPTZ,
        opened_at TIMESTAMPTZ,
        clicked_at TIMESTAMPTZ,
        bounced_at TIMESTAMPTZ,
        failed_at TIMESTAMPTZ,
        error_message TEXT,
        batch_number INTEGER,
        created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(blast_id, user_id)
    );

    -- Essential indexes
    CREATE INDEX IF NOT EXISTS idx_email_blasts_campaign ON email_blasts(campaign_id);
    CREATE INDEX IF NOT EXISTS idx_email_blasts_status ON email_blasts(status) WHERE deleted_at IS NULL;
    CREATE INDEX IF NOT EXISTS idx_email_blasts_scheduled ON email_blasts(scheduled_at)
        WHERE status = 'scheduled' AND deleted_at IS NULL;
    CREATE INDEX IF NOT EXISTS idx_blast_recipients_status ON blast_recipients(blast_id, status);
    CREATE INDEX IF NOT EXISTS idx_blast_recipients_batch ON blast_recipients(blast_id, batch_number)
        WHERE status = 'pending';
    CREATE INDEX IF NOT EXISTS idx_blast_recipients_user ON blast_recipients(user_id);
    CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON subscriptions(user_id, created_at DESC);
'''

async def create_schema(conn: asyncpg.Connection) -> None:
    """Create every table the blast core reads or writes"""
    # Create extension for UUID
    await conn.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    await conn.execute(TABLES_SQL)
    logger.info("Created email blast and tier tables")

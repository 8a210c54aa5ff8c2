"""
Alembic migration to create the email_verifications table
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20251019'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'email_verifications',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String, nullable=False),
        sa.Column('code', sa.String(6), nullable=False),
        sa.Column('purpose', sa.String(16), nullable=False, server_default='signup'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('expires_at', sa.DateTime, nullable=False),
        sa.Column('verified', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('verified_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_email_verifications_email_code', 'email_verifications', ['email', 'code'])
    op.create_index('idx_email_verifications_expires_at', 'email_verifications', ['expires_at'])
    # Only one pending code per email and purpose; verified rows are kept as history
    op.create_index(
        'uq_email_verifications_pending',
        'email_verifications',
        ['email', 'purpose'],
        unique=True,
        postgresql_where=sa.text('verified = false'),
        sqlite_where=sa.text('verified = 0'),
    )


def downgrade():
    op.drop_index('uq_email_verifications_pending', table_name='email_verifications')
    op.drop_index('idx_email_verifications_expires_at', table_name='email_verifications')
    op.drop_index('idx_email_verifications_email_code', table_name='email_verifications')
    op.drop_table('email_verifications')

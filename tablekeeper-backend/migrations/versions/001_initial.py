from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None

TABLE_STATUS = sa.Enum('idle', 'dining', 'warning', 'timeout', 'buffer', 'disabled', name='table_status')
RESERVATION_SOURCE = sa.Enum('phone', 'wechat', 'walk-in', 'platform', 'other', name='reservation_source')
RESERVATION_STATUS = sa.Enum('pending', 'confirmed', 'arrived', 'completed', 'cancelled', name='reservation_status')
OPERATION_TYPE = sa.Enum('create', 'update', 'delete', name='operation_type')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table(
        'tables',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('table_number', sa.String(length=20), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('default_duration', sa.Integer(), nullable=False, server_default='90'),
        sa.Column('buffer_duration', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('status', TABLE_STATUS, nullable=False, server_default='idle'),
        sa.Column('is_active', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.UniqueConstraint('table_number', name='uq_tables_table_number'),
    )

    op.create_table(
        'dining_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('table_id', sa.Integer(), sa.ForeignKey('tables.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_time', sa.BigInteger(), nullable=False),
        sa.Column('end_time', sa.BigInteger(), nullable=False),
        sa.Column('actual_end_time', sa.BigInteger(), nullable=True),
        sa.Column('buffer_end_time', sa.BigInteger(), nullable=True),
        sa.Column('last_alert_time', sa.BigInteger(), nullable=True),
        sa.Column('extension_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_extension_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_completed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remarks', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_dining_sessions_table_id', 'dining_sessions', ['table_id'])
    op.create_index(
        'uq_dining_sessions_active_table', 'dining_sessions', ['table_id'], unique=True,
        sqlite_where=sa.text('is_completed = 0'),
        postgresql_where=sa.text('is_completed = 0'),
    )

    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reservation_date', sa.String(length=10), nullable=False),
        sa.Column('reservation_time', sa.String(length=5), nullable=False),
        sa.Column('guest_name', sa.String(length=120), nullable=False),
        sa.Column('guest_phone', sa.String(length=32), nullable=False),
        sa.Column('party_size', sa.Integer(), nullable=False),
        sa.Column('source', RESERVATION_SOURCE, nullable=False, server_default='phone'),
        sa.Column('status', RESERVATION_STATUS, nullable=False, server_default='pending'),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('tags', sa.String(length=255), nullable=True),
        sa.Column('table_id', sa.Integer(), sa.ForeignKey('tables.id', ondelete='SET NULL'), nullable=True),
        sa.Column('dining_session_id', sa.Integer(), sa.ForeignKey('dining_sessions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_high_risk', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_reservations_reservation_date', 'reservations', ['reservation_date'])
    op.create_index('ix_reservations_guest_phone', 'reservations', ['guest_phone'])

    op.create_table(
        'operation_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('operation_type', OPERATION_TYPE, nullable=False),
        sa.Column('reservation_id', sa.Integer(), nullable=False),
        sa.Column('operated_by', sa.Integer(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_operation_logs_reservation_id', 'operation_logs', ['reservation_id'])

    op.create_table(
        'capacity_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('period_name', sa.String(length=50), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False),
    )

    op.create_table(
        'blacklist',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('guest_phone', sa.String(length=32), nullable=False),
        sa.Column('guest_name', sa.String(length=120), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('guest_phone', name='uq_blacklist_phone'),
    )


def downgrade():
    op.drop_table('blacklist')
    op.drop_table('capacity_config')
    op.drop_index('ix_operation_logs_reservation_id', table_name='operation_logs')
    op.drop_table('operation_logs')
    op.drop_index('ix_reservations_guest_phone', table_name='reservations')
    op.drop_index('ix_reservations_reservation_date', table_name='reservations')
    op.drop_table('reservations')
    op.drop_index('uq_dining_sessions_active_table', table_name='dining_sessions')
    op.drop_index('ix_dining_sessions_table_id', table_name='dining_sessions')
    op.drop_table('dining_sessions')
    op.drop_table('tables')
    for enum in (OPERATION_TYPE, RESERVATION_STATUS, RESERVATION_SOURCE, TABLE_STATUS):
        enum.drop(op.get_bind(), checkfirst=True)

"""referral ledger initial schema (employees, users, properties, referral_*)

Revision ID: 3f1a9c7e2b10
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c7e2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_code', sa.String(length=16), nullable=False, unique=True),
        sa.Column('referral_code', sa.String(length=16), nullable=False, unique=True),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.Enum('field_agent', 'team_lead', 'manager', name='employee_role_enum'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('join_date', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('rate_user_registration', sa.Numeric(14, 2), nullable=False),
        sa.Column('rate_broker_registration', sa.Numeric(14, 2), nullable=False),
        sa.Column('rate_broker_first_property', sa.Numeric(14, 2), nullable=False),
        sa.Column('bonus_user_achievement', sa.Integer(), nullable=False),
        sa.Column('bonus_user_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('bonus_broker_achievement', sa.Integer(), nullable=False),
        sa.Column('bonus_broker_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('target_monthly_users', sa.Integer(), nullable=False),
        sa.Column('target_monthly_brokers', sa.Integer(), nullable=False),
        sa.Column('target_quarterly_users', sa.Integer(), nullable=False),
        sa.Column('target_quarterly_brokers', sa.Integer(), nullable=False),
        sa.Column('bank_details', sa.JSON(), nullable=True),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_emp_is_active', 'employees', ['is_active'])
    op.create_index('ix_emp_role', 'employees', ['role'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('contact_number', sa.String(length=20), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('user_type', sa.Enum('user', 'broker', 'sub_broker', 'admin', name='user_type_enum'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('parent_broker_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('referred_by_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.Column('referral_code', sa.String(length=16), nullable=True),
        sa.Column('referral_date', sa.DateTime(), nullable=True),
        sa.Column('is_first_property_listed', sa.Boolean(), nullable=False),
        sa.Column('first_property_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_referred_by_id', 'users', ['referred_by_id'])
    op.create_index('ix_users_referral_date', 'users', ['referral_date'])

    op.create_table(
        'properties',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('broker_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('property_type', sa.Enum('Apartment', 'House', 'Villa', 'Cottage', 'Commercial', 'Land',
                                           name='property_type_enum'), nullable=False),
        sa.Column('transaction_type', sa.Enum('Sale', 'Rent', 'Lease', name='transaction_type_enum'), nullable=False),
        sa.Column('price', sa.Numeric(14, 2), nullable=False),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_properties_broker_id', 'properties', ['broker_id'])

    # no FK on employee_id: ledger rows outlive the employee
    op.create_table(
        'referral_stats',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=False),
        sa.Column('users_referred', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('brokers_referred', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('broker_first_properties', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('bonus_earnings', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.Column('paid_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('payment_reference', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('rates_snapshot', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'period', name='uq_referral_stats_emp_period'),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='ck_referral_stats_month'),
    )
    op.create_index('ix_referral_stats_emp_ym', 'referral_stats', ['employee_id', 'year', 'month'])
    op.create_index('ix_referral_stats_ym', 'referral_stats', ['year', 'month'])
    op.create_index('ix_referral_stats_period', 'referral_stats', ['period'])
    op.create_index('ix_referral_stats_is_paid', 'referral_stats', ['is_paid'])

    op.create_table(
        'referral_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stats_id', sa.Integer(), sa.ForeignKey('referral_stats.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject_id', sa.Integer(), nullable=False),
        sa.Column('subject_type', sa.Enum('user', 'broker', name='referral_subject_type_enum'), nullable=False),
        sa.Column('commission', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('is_first_property', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_referral_events_stats_id', 'referral_events', ['stats_id'])
    op.create_index('ix_referral_events_subject_id', 'referral_events', ['subject_id'])

    op.create_table(
        'referral_daily_stats',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stats_id', sa.Integer(), sa.ForeignKey('referral_stats.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('users_referred', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('brokers_referred', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('stats_id', 'day', name='uq_referral_daily_stats_day'),
    )
    op.create_index('ix_referral_daily_stats_stats_id', 'referral_daily_stats', ['stats_id'])


def downgrade() -> None:
    op.drop_index('ix_referral_daily_stats_stats_id', table_name='referral_daily_stats')
    op.drop_table('referral_daily_stats')
    op.drop_index('ix_referral_events_subject_id', table_name='referral_events')
    op.drop_index('ix_referral_events_stats_id', table_name='referral_events')
    op.drop_table('referral_events')
    op.drop_index('ix_referral_stats_is_paid', table_name='referral_stats')
    op.drop_index('ix_referral_stats_period', table_name='referral_stats')
    op.drop_index('ix_referral_stats_ym', table_name='referral_stats')
    op.drop_index('ix_referral_stats_emp_ym', table_name='referral_stats')
    op.drop_table('referral_stats')
    op.drop_index('ix_properties_broker_id', table_name='properties')
    op.drop_table('properties')
    op.drop_index('ix_users_referral_date', table_name='users')
    op.drop_index('ix_users_referred_by_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_emp_role', table_name='employees')
    op.drop_index('ix_emp_is_active', table_name='employees')
    op.drop_table('employees')

    bind = op.get_bind()
    for name in ('referral_subject_type_enum', 'transaction_type_enum', 'property_type_enum',
                 'user_type_enum', 'employee_role_enum'):
        sa.Enum(name=name).drop(bind, checkfirst=True)

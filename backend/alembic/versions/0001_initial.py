"""flights and purchases

Revision ID: 0001_initial
Revises:
Create Date: 2025-10-04
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    op.create_table('flights',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('origin', sa.String(length=64), nullable=False),
        sa.Column('destination', sa.String(length=64), nullable=False),
        sa.Column('departure', sa.DateTime(), nullable=False),
        sa.Column('seats_available', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.CheckConstraint('seats_available >= 0', name='ck_flights_seats_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_flights_price_non_negative'),
    )
    op.create_index('ix_flights_route_departure', 'flights', ['origin', 'destination', 'departure'])
    op.create_table('purchases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('flight_id', sa.Integer(), sa.ForeignKey('flights.id'), nullable=False),
        sa.Column('buyer_email', sa.String(length=255), nullable=False),
        sa.Column('ticket_code', sa.String(length=32), nullable=False),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_purchases_ticket_code', 'purchases', ['ticket_code'], unique=True)
    op.create_index('ix_purchases_buyer_email', 'purchases', ['buyer_email'])
    op.create_index('ix_purchases_flight_id', 'purchases', ['flight_id'])


def downgrade() -> None:
    op.drop_index('ix_purchases_flight_id', table_name='purchases')
    op.drop_index('ix_purchases_buyer_email', table_name='purchases')
    op.drop_index('ix_purchases_ticket_code', table_name='purchases')
    op.drop_table('purchases')
    op.drop_index('ix_flights_route_departure', table_name='flights')
    op.drop_table('flights')

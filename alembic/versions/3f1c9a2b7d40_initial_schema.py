"""initial schema

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-19 10:12:44.318902

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'admins',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index(op.f('ix_admins_id'), 'admins', ['id'], unique=False)

    # groups.leader_id is added once users exists
    op.create_table(
        'groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index(op.f('ix_groups_id'), 'groups', ['id'], unique=False)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('position', sa.String(), nullable=False),
        sa.Column('login', sa.String(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('manager_id', sa.Integer(), nullable=True),
        sa.Column('submits_basic_report', sa.Boolean(), nullable=False),
        sa.Column('submits_kpi', sa.Boolean(), nullable=False),
        sa.Column('can_access_platform', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id']),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('login'),
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_group_id'), 'users', ['group_id'], unique=False)
    op.create_index(op.f('ix_users_manager_id'), 'users', ['manager_id'], unique=False)

    with op.batch_alter_table('groups') as batch_op:
        batch_op.add_column(sa.Column('leader_id', sa.Integer(), nullable=True))
        batch_op.create_unique_constraint('uq_groups_leader_id', ['leader_id'])
        batch_op.create_foreign_key(
            'fk_groups_leader_id', 'users', ['leader_id'], ['id'], ondelete='SET NULL'
        )

    op.create_table(
        'evaluation_periods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_evaluation_periods_id'), 'evaluation_periods', ['id'], unique=False)

    op.create_table(
        'evaluations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False),
        sa.Column('evaluator_id', sa.Integer(), nullable=False),
        sa.Column('evaluatee_id', sa.Integer(), nullable=False),
        sa.Column('form_type', sa.String(), nullable=False),
        sa.Column('scores', sa.JSON(), nullable=False),
        sa.Column('comments', sa.JSON(), nullable=True),
        sa.Column('average_score', sa.Float(), nullable=False),
        sa.Column('result', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['period_id'], ['evaluation_periods.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['evaluator_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['evaluatee_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('period_id', 'evaluator_id', 'evaluatee_id', name='uq_evaluation_period_evaluator_evaluatee'),
    )
    op.create_index(op.f('ix_evaluations_id'), 'evaluations', ['id'], unique=False)
    op.create_index(op.f('ix_evaluations_period_id'), 'evaluations', ['period_id'], unique=False)
    op.create_index(op.f('ix_evaluations_evaluatee_id'), 'evaluations', ['evaluatee_id'], unique=False)

    op.create_table(
        'group_scores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('user_count', sa.Integer(), nullable=False),
        sa.Column('is_leaf', sa.Boolean(), nullable=False),
        sa.Column('calculated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['period_id'], ['evaluation_periods.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'period_id', name='uq_group_score_group_period'),
    )
    op.create_index(op.f('ix_group_scores_id'), 'group_scores', ['id'], unique=False)

    op.create_table(
        'kpis',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('approver_id', sa.Integer(), nullable=False),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by_id'], ['admins.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_kpis_id'), 'kpis', ['id'], unique=False)
    op.create_index(op.f('ix_kpis_status'), 'kpis', ['status'], unique=False)
    op.create_index(op.f('ix_kpis_approver_id'), 'kpis', ['approver_id'], unique=False)

    op.create_table(
        'kpi_blocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kpi_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['kpi_id'], ['kpis.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_kpi_blocks_id'), 'kpi_blocks', ['id'], unique=False)
    op.create_index(op.f('ix_kpi_blocks_kpi_id'), 'kpi_blocks', ['kpi_id'], unique=False)

    op.create_table(
        'kpi_tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('block_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('unit', sa.String(), nullable=False),
        sa.Column('plan_value', sa.Float(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['block_id'], ['kpi_blocks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_kpi_tasks_id'), 'kpi_tasks', ['id'], unique=False)
    op.create_index(op.f('ix_kpi_tasks_block_id'), 'kpi_tasks', ['block_id'], unique=False)

    op.create_table(
        'kpi_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kpi_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('is_submitted', sa.Boolean(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['kpi_id'], ['kpis.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('kpi_id', 'user_id', name='uq_kpi_assignment_kpi_user'),
    )
    op.create_index(op.f('ix_kpi_assignments_id'), 'kpi_assignments', ['id'], unique=False)
    op.create_index(op.f('ix_kpi_assignments_user_id'), 'kpi_assignments', ['user_id'], unique=False)

    op.create_table(
        'kpi_task_facts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('fact_value', sa.Float(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['task_id'], ['kpi_tasks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assignment_id'], ['kpi_assignments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_id', 'assignment_id', name='uq_kpi_task_fact_task_assignment'),
    )
    op.create_index(op.f('ix_kpi_task_facts_id'), 'kpi_task_facts', ['id'], unique=False)
    op.create_index(op.f('ix_kpi_task_facts_assignment_id'), 'kpi_task_facts', ['assignment_id'], unique=False)


def downgrade() -> None:
    op.drop_table('kpi_task_facts')
    op.drop_table('kpi_assignments')
    op.drop_table('kpi_tasks')
    op.drop_table('kpi_blocks')
    op.drop_table('kpis')
    op.drop_table('group_scores')
    op.drop_table('evaluations')
    op.drop_table('evaluation_periods')
    with op.batch_alter_table('groups') as batch_op:
        batch_op.drop_constraint('fk_groups_leader_id', type_='foreignkey')
        batch_op.drop_constraint('uq_groups_leader_id', type_='unique')
        batch_op.drop_column('leader_id')
    op.drop_table('users')
    op.drop_table('groups')
    op.drop_table('admins')

"""Signal engine — initial tables

Revision ID: a1c3e5f70001
Revises: None
Create Date: 2026-10-16

New tables:
    - projects, decisions, decision_intelligence
    - artifact_events: Append-only lifecycle events + worker bookkeeping
    - ai_suggestions: Advisory suggestion queue
    - approval_sla_config, approval_groups, artifact_approval_steps, change_approvals
    - sla_cache_generations, exec_approval_cache, exec_approval_bottlenecks
    - scheduled_jobs: Job registry + run history
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a1c3e5f70001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ── projects / decision log ───────────────────────────────────────────
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='active'),
    )
    op.create_index('ix_projects_status', 'projects', ['status'])

    op.create_table(
        'decisions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ref', sa.String(30), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('category', sa.String(40), nullable=False, server_default='Other'),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),
        sa.Column('impact', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('impact_description', sa.Text(), default=''),
        sa.Column('owner', sa.String(150), nullable=True),
        sa.Column('approver', sa.String(150), nullable=True),
        sa.Column('rationale', sa.Text(), default=''),
        sa.Column('context', sa.Text(), default=''),
        sa.Column('options_considered', sa.JSON()),
        sa.Column('date_raised', sa.Date(), nullable=False),
        sa.Column('needed_by_date', sa.Date(), nullable=True),
        sa.Column('implementation_date', sa.Date(), nullable=True),
        sa.Column('review_date', sa.Date(), nullable=True),
        sa.Column('reversible', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_decisions_project_id', 'decisions', ['project_id'])

    op.create_table(
        'decision_intelligence',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('headline', sa.String(500), nullable=False, server_default=''),
        sa.Column('rag', sa.String(10), nullable=False, server_default='green'),
        sa.Column('narrative', sa.Text()),
        sa.Column('key_decisions', sa.JSON()),
        sa.Column('pending_risks', sa.JSON()),
        sa.Column('pm_actions', sa.JSON()),
        sa.Column('early_warnings', sa.JSON()),
        sa.Column('signals', sa.JSON()),
        sa.Column('fallback', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ── artifact_events ───────────────────────────────────────────────────
    op.create_table(
        'artifact_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('artifact_id', sa.Integer(), nullable=True),
        sa.Column('artifact_type', sa.String(60), nullable=False),
        sa.Column('action', sa.String(30), nullable=False),
        sa.Column('payload', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('process_error', sa.Text(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_by', sa.String(100), nullable=True),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quarantined_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_artifact_events_project_id', 'artifact_events', ['project_id'])
    op.create_index('ix_artifact_events_queue', 'artifact_events',
                    ['processed_at', 'quarantined_at', 'created_at'])

    # ── ai_suggestions ────────────────────────────────────────────────────
    op.create_table(
        'ai_suggestions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('source_event_id', sa.Integer(),
                  sa.ForeignKey('artifact_events.id', ondelete='SET NULL'), nullable=True),
        sa.Column('target_artifact_id', sa.Integer(), nullable=True),
        sa.Column('target_artifact_type', sa.String(60), nullable=False),
        sa.Column('suggestion_type', sa.String(30), nullable=False, server_default='narrative'),
        sa.Column('patch', sa.JSON(), nullable=True),
        sa.Column('rationale', sa.Text(), default=''),
        sa.Column('confidence', sa.Float(), default=0.0),
        sa.Column('status', sa.String(20), nullable=False, server_default='proposed'),
        sa.Column('trigger_key', sa.String(200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('project_id', 'trigger_key', name='uq_ai_suggestions_project_trigger'),
    )
    op.create_index('ix_ai_suggestions_project_id', 'ai_suggestions', ['project_id'])
    op.create_index('ix_ai_suggestions_source_event_id', 'ai_suggestions', ['source_event_id'])
    op.create_index('ix_ai_suggestions_status', 'ai_suggestions', ['status'])

    # ── approval SLA inputs ───────────────────────────────────────────────
    op.create_table(
        'approval_sla_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('artifact_type', sa.String(60), nullable=True),
        sa.Column('stage_key', sa.String(60), nullable=True),
        sa.Column('sla_hours', sa.Integer(), nullable=False, server_default='72'),
        sa.Column('warn_hours', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('breach_grace_hours', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_approval_sla_config_project_id', 'approval_sla_config', ['project_id'])

    op.create_table(
        'approval_groups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
    )

    op.create_table(
        'artifact_approval_steps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('artifact_id', sa.Integer(), nullable=True),
        sa.Column('artifact_type', sa.String(60), nullable=False),
        sa.Column('stage_key', sa.String(60), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approver_user_id', sa.String(150), nullable=True),
        sa.Column('approver_group_id', sa.Integer(),
                  sa.ForeignKey('approval_groups.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_artifact_approval_steps_project_id', 'artifact_approval_steps', ['project_id'])
    op.create_index('ix_artifact_approval_steps_status', 'artifact_approval_steps', ['status'])

    op.create_table(
        'change_approvals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('change_request_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approver_user_id', sa.String(150), nullable=True),
        sa.Column('approver_group_id', sa.Integer(),
                  sa.ForeignKey('approval_groups.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_change_approvals_project_id', 'change_approvals', ['project_id'])
    op.create_index('ix_change_approvals_status', 'change_approvals', ['status'])

    # ── SLA cache (generation-swapped) ────────────────────────────────────
    op.create_table(
        'sla_cache_generations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cache_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bottleneck_rows', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_sla_cache_generations_is_current', 'sla_cache_generations', ['is_current'])

    op.create_table(
        'exec_approval_cache',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('generation_id', sa.Integer(),
                  sa.ForeignKey('sla_cache_generations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(40), nullable=False, server_default='artifact_approval_steps'),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('artifact_id', sa.Integer(), nullable=True),
        sa.Column('artifact_type', sa.String(60), nullable=True),
        sa.Column('stage_key', sa.String(60), nullable=True),
        sa.Column('approver_user_id', sa.String(150), nullable=True),
        sa.Column('approver_group_id', sa.Integer(), nullable=True),
        sa.Column('approver_label', sa.String(200), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sla_status', sa.String(30), nullable=False, server_default='unknown'),
        sa.Column('hours_to_due', sa.Integer(), nullable=True),
        sa.Column('hours_overdue', sa.Integer(), nullable=True),
        sa.Column('sla_hours', sa.Integer(), nullable=True),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_exec_approval_cache_generation_id', 'exec_approval_cache', ['generation_id'])
    op.create_index('ix_exec_approval_cache_project_id', 'exec_approval_cache', ['project_id'])
    op.create_index('ix_exec_approval_cache_sla_status', 'exec_approval_cache', ['sla_status'])

    op.create_table(
        'exec_approval_bottlenecks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('generation_id', sa.Integer(),
                  sa.ForeignKey('sla_cache_generations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('approver_key', sa.String(200), nullable=False),
        sa.Column('approver_user_id', sa.String(150), nullable=True),
        sa.Column('approver_group_id', sa.Integer(), nullable=True),
        sa.Column('approver_label', sa.String(200), nullable=False),
        sa.Column('open_steps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('breached_steps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('at_risk_steps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_hours_overdue', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('blocker_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_exec_approval_bottlenecks_generation_id', 'exec_approval_bottlenecks',
                    ['generation_id'])
    op.create_index('ix_exec_approval_bottlenecks_blocker_score', 'exec_approval_bottlenecks',
                    ['blocker_score'])

    # ── scheduled_jobs ────────────────────────────────────────────────────
    op.create_table(
        'scheduled_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.String(500), default=''),
        sa.Column('schedule_config', sa.JSON()),
        sa.Column('status', sa.String(20), default='active'),
        sa.Column('is_enabled', sa.Boolean(), default=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_status', sa.String(20), nullable=True),
        sa.Column('last_run_duration_ms', sa.Integer(), nullable=True),
        sa.Column('last_run_result', sa.JSON(), nullable=True),
        sa.Column('run_count', sa.Integer(), default=0),
        sa.Column('error_count', sa.Integer(), default=0),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )


def downgrade():
    op.drop_table('scheduled_jobs')
    op.drop_table('exec_approval_bottlenecks')
    op.drop_table('exec_approval_cache')
    op.drop_table('sla_cache_generations')
    op.drop_table('change_approvals')
    op.drop_table('artifact_approval_steps')
    op.drop_table('approval_groups')
    op.drop_table('approval_sla_config')
    op.drop_table('ai_suggestions')
    op.drop_table('artifact_events')
    op.drop_table('decision_intelligence')
    op.drop_table('decisions')
    op.drop_table('projects')

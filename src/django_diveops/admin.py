"""Django admin configuration for dive operations."""

from django import forms
from django.contrib import admin, messages

from .alerts import acknowledge_alert
from .models import (
    AlertEscalation,
    DepthSample,
    Dive,
    DiveLog,
    DiveTeam,
    Operation,
    SafetyAlert,
    SafetyAlertRule,
    SafetyAnnex,
    WorkPermit,
)
from .services import (
    assign_team,
    create_independent_dive,
    create_planned_dive,
    notify_compliance_changed,
    record_dive_log,
    validate_dive_plan,
)
from .workflow import get_compliance, get_workflow_step


@admin.register(DiveTeam)
class DiveTeamAdmin(admin.ModelAdmin):
    list_display = ['name', 'supervisor', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']


class WorkPermitInline(admin.TabularInline):
    model = WorkPermit
    extra = 0
    fields = ['code', 'signed', 'signed_at', 'signed_by']
    readonly_fields = ['signed', 'signed_at', 'signed_by']


class SafetyAnnexInline(admin.TabularInline):
    model = SafetyAnnex
    extra = 0
    fields = ['code', 'signed', 'signed_at', 'signed_by']
    readonly_fields = ['signed', 'signed_at', 'signed_by']


@admin.register(Operation)
class OperationAdmin(admin.ModelAdmin):
    """Admin for Operation model with derived workflow state."""

    list_display = ['code', 'name', 'status', 'team', 'workflow_step', 'can_execute']
    list_filter = ['status']
    search_fields = ['code', 'name']
    readonly_fields = ['id', 'workflow_step', 'compliance_blocks', 'created_at', 'updated_at']
    inlines = [WorkPermitInline, SafetyAnnexInline]

    def workflow_step(self, obj):
        """Display the derived workflow step."""
        return get_workflow_step(obj.pk).value
    workflow_step.short_description = 'Workflow step'

    def can_execute(self, obj):
        return get_compliance(obj.pk).allowed
    can_execute.boolean = True
    can_execute.short_description = 'Cleared'

    def compliance_blocks(self, obj):
        return '; '.join(get_compliance(obj.pk).blocks) or '-'
    compliance_blocks.short_description = 'Blocked by'

    def save_model(self, request, obj, form, change):
        """Route team changes through assign_team so the gate is re-evaluated."""
        if not (change and 'team' in form.changed_data):
            super().save_model(request, obj, form, change)
            return

        team = obj.team
        obj.team_id = form.initial.get('team')
        super().save_model(request, obj, form, change)
        assign_team(obj, team)
        obj.team = team

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        if any(formset.has_changed() for formset in formsets):
            notify_compliance_changed(form.instance)


class DepthSampleInline(admin.TabularInline):
    """Inline for viewing the depth history of a dive."""

    model = DepthSample
    extra = 0
    fields = ['sequence', 'depth', 'recorded_at']
    readonly_fields = ['sequence', 'depth', 'recorded_at']
    can_delete = False
    ordering = ['sequence']

    def has_add_permission(self, request, obj=None):
        return False


class DiveAdminForm(forms.ModelForm):
    """Dive form applying the same plan checks as the creation services."""

    class Meta:
        model = Dive
        fields = '__all__'

    def clean(self):
        cleaned_data = super().clean()
        if self.instance._state.adding:
            errors = validate_dive_plan(
                cleaned_data.get('planned_max_depth'),
                cleaned_data.get('planned_bottom_time'),
                operation=cleaned_data.get('operation'),
                site=cleaned_data.get('site', ''),
            )
        elif self.instance.operation_id is None and not cleaned_data.get('site', '').strip():
            errors = ['Site is required for independent dives']
        else:
            errors = []

        if errors:
            raise forms.ValidationError(errors)
        return cleaned_data


@admin.register(Dive)
class DiveAdmin(admin.ModelAdmin):
    """
    Admin for Dive model.

    New dives are created through create_planned_dive / create_independent_dive.
    State and the recorded start and end only change through the lifecycle
    services, and the operation and target depth are fixed once created.
    """

    form = DiveAdminForm
    list_display = ['code', 'operation', 'site', 'state', 'planned_max_depth', 'planned_bottom_time', 'started_at']
    list_filter = ['state', 'dive_date']
    search_fields = ['code', 'site', 'operation__code']
    readonly_fields = ['id', 'state', 'started_at', 'ended_at', 'created_at', 'updated_at']
    inlines = [DepthSampleInline]

    def get_readonly_fields(self, request, obj=None):
        if obj is None:
            return self.readonly_fields
        return self.readonly_fields + ['operation', 'planned_max_depth']

    def get_inline_instances(self, request, obj=None):
        if obj is None:
            return []
        return super().get_inline_instances(request, obj)

    def save_model(self, request, obj, form, change):
        if change:
            super().save_model(request, obj, form, change)
            return

        options = {
            'planned_bottom_time': obj.planned_bottom_time,
            'dive_date': obj.dive_date,
            'start_time': obj.start_time,
            'supervisor': obj.supervisor,
            'code': obj.code,
        }
        if obj.operation is not None:
            created = create_planned_dive(obj.operation, obj.planned_max_depth, site=obj.site, **options)
        else:
            created = create_independent_dive(obj.planned_max_depth, obj.site, **options)
        obj.pk = created.pk
        obj.refresh_from_db()
        obj._state.adding = False


class DiveLogAdminForm(forms.ModelForm):
    class Meta:
        model = DiveLog
        fields = '__all__'

    def clean_dive(self):
        dive = self.cleaned_data['dive']
        if dive.state != Dive.State.COMPLETED:
            raise forms.ValidationError(
                f'Only completed dives can be logged (dive {dive.code} is {dive.state})'
            )
        return dive


@admin.register(DiveLog)
class DiveLogAdmin(admin.ModelAdmin):
    form = DiveLogAdminForm
    list_display = ['dive', 'author', 'created_at']
    search_fields = ['dive__code', 'notes']

    def get_readonly_fields(self, request, obj=None):
        if obj is None:
            return self.readonly_fields
        return list(self.readonly_fields) + ['dive']

    def save_model(self, request, obj, form, change):
        if change:
            super().save_model(request, obj, form, change)
            return

        created = record_dive_log(obj.dive, author=obj.author, notes=obj.notes)
        obj.pk = created.pk
        obj.refresh_from_db()
        obj._state.adding = False


@admin.register(SafetyAlertRule)
class SafetyAlertRuleAdmin(admin.ModelAdmin):
    """Admin for SafetyAlertRule model."""

    list_display = ['name', 'type', 'priority', 'enabled', 'created_at']
    list_filter = ['type', 'priority', 'enabled']
    list_editable = ['enabled']
    search_fields = ['name', 'description']
    readonly_fields = ['id', 'created_at', 'updated_at']
    fieldsets = [
        ('Rule', {
            'fields': ['id', 'name', 'type', 'priority', 'enabled']
        }),
        ('Configuration', {
            'fields': ['config', 'message_template', 'description']
        }),
        ('Timestamps', {
            'fields': ['created_at', 'updated_at'],
            'classes': ['collapse']
        }),
    ]


class AlertEscalationInline(admin.TabularInline):
    model = AlertEscalation
    extra = 0
    readonly_fields = ['level', 'escalated_at', 'notified']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SafetyAlert)
class SafetyAlertAdmin(admin.ModelAdmin):
    """Admin for SafetyAlert model (read-only, acknowledge via action)."""

    list_display = ['dive', 'type', 'priority', 'message', 'acknowledged', 'created_at']
    list_filter = ['type', 'priority', 'acknowledged']
    search_fields = ['dive__code', 'message']
    readonly_fields = [
        'id',
        'dive',
        'rule',
        'type',
        'priority',
        'details',
        'message',
        'acknowledged',
        'acknowledged_at',
        'acknowledged_by',
        'created_at',
    ]
    inlines = [AlertEscalationInline]
    actions = ['acknowledge_selected']

    @admin.action(description='Acknowledge selected alerts')
    def acknowledge_selected(self, request, queryset):
        count = 0
        for alert_id in queryset.filter(acknowledged=False).values_list('pk', flat=True):
            acknowledge_alert(alert_id, acknowledged_by=request.user)
            count += 1
        self.message_user(request, f'Acknowledged {count} alert(s)', messages.SUCCESS)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

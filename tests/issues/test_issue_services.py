import pytest
from django.core.exceptions import PermissionDenied

from issues.models import Issue
from issues.services import create_issue, escalate, open_count, update_status, visible_issues
from notifications.models import Notification


@pytest.fixture
def issue(staff_user, session_for, event):
    return create_issue(session_for(staff_user), event, Issue.Type.MATERIAL_SHORTAGE, "  Out of SIM kits  ")


@pytest.mark.django_db
class TestCreateIssue:
    def test_defaults_escalation_to_event_creator(self, issue, dgm_user, staff_user):
        assert issue.status == Issue.Status.OPEN
        assert issue.escalated_to == dgm_user
        assert issue.description == "Out of SIM kits"
        assert len(issue.timeline) == 1
        assert issue.timeline[0]["action"] == "Issue Created"
        assert issue.timeline[0]["performed_by"] == str(staff_user.pk)
        assert Notification.objects.filter(recipient=dgm_user, type=Notification.Type.ISSUE_RAISED).exists()

    def test_invalid_type(self, staff_user, session_for, event):
        with pytest.raises(ValueError, match="Invalid issue type"):
            create_issue(session_for(staff_user), event, "POWER_CUT", "No power")

    def test_blank_description(self, staff_user, session_for, event):
        with pytest.raises(ValueError, match="Description is required"):
            create_issue(session_for(staff_user), event, Issue.Type.OTHER, "   ")


@pytest.mark.django_db
class TestStatus:
    def test_forward_move_appends_timeline(self, issue, dgm_user, staff_user, session_for):
        issue = update_status(session_for(dgm_user), issue.pk, Issue.Status.IN_PROGRESS, "Dispatching kits")

        assert issue.status == Issue.Status.IN_PROGRESS
        assert len(issue.timeline) == 2
        assert issue.timeline[-1]["action"] == "Status changed to IN_PROGRESS: Dispatching kits"
        assert Notification.objects.filter(
            recipient=staff_user, type=Notification.Type.ISSUE_STATUS_CHANGED,
        ).exists()

    def test_skipping_steps_is_allowed_and_sets_resolver(self, issue, dgm_user, staff_user, session_for):
        issue = update_status(session_for(dgm_user), issue.pk, Issue.Status.RESOLVED)

        assert issue.resolved_by == dgm_user
        assert issue.resolved_at is not None
        assert Notification.objects.filter(recipient=staff_user, type=Notification.Type.ISSUE_RESOLVED).exists()

    @pytest.mark.parametrize("target", [Issue.Status.OPEN, Issue.Status.IN_PROGRESS])
    def test_backward_or_same_move_rejected(self, issue, dgm_user, session_for, target):
        update_status(session_for(dgm_user), issue.pk, Issue.Status.IN_PROGRESS)
        with pytest.raises(ValueError, match="Cannot move issue"):
            update_status(session_for(dgm_user), issue.pk, target)

    def test_raiser_without_role_cannot_change_status(self, issue, staff_user, session_for):
        with pytest.raises(PermissionDenied):
            update_status(session_for(staff_user), issue.pk, Issue.Status.CLOSED)

    def test_invalid_status(self, issue, dgm_user, session_for):
        with pytest.raises(ValueError, match="Invalid status"):
            update_status(session_for(dgm_user), issue.pk, "WONTFIX")


@pytest.mark.django_db
class TestEscalate:
    def test_escalation_moves_to_in_progress(self, issue, staff_user, gm_user, session_for):
        issue = escalate(session_for(staff_user), issue.pk, gm_user)

        assert issue.escalated_to == gm_user
        assert issue.status == Issue.Status.IN_PROGRESS
        assert issue.timeline[-1]["action"] == f"Escalated to {gm_user.name}"
        assert Notification.objects.filter(recipient=gm_user, type=Notification.Type.ISSUE_ESCALATED).exists()

    def test_resolved_issue_cannot_be_escalated(self, issue, dgm_user, gm_user, session_for):
        update_status(session_for(dgm_user), issue.pk, Issue.Status.RESOLVED)
        with pytest.raises(ValueError, match="Cannot escalate"):
            escalate(session_for(dgm_user), issue.pk, gm_user)

    def test_uninvolved_staff_cannot_escalate(self, issue, other_staff_user, gm_user, session_for):
        with pytest.raises(PermissionDenied):
            escalate(session_for(other_staff_user), issue.pk, gm_user)


@pytest.mark.django_db
class TestVisibility:
    def test_staff_see_raised_and_managers_see_escalated(
        self, issue, admin_user, dgm_user, staff_user, other_staff_user, gm_user, session_for,
    ):
        assert visible_issues(session_for(admin_user)).count() == 1
        assert list(visible_issues(session_for(staff_user))) == [issue]
        assert list(visible_issues(session_for(dgm_user))) == [issue]
        assert list(visible_issues(session_for(gm_user))) == []
        assert list(visible_issues(session_for(other_staff_user))) == []
        assert open_count(session_for(dgm_user)) == 1

    def test_manager_does_not_see_issues_they_raised_for_someone_else(
        self, dgm_user, gm_user, session_for, event_factory,
    ):
        gm_event = event_factory(name="Onam Fair", created_by=gm_user)
        raised = create_issue(session_for(dgm_user), gm_event, Issue.Type.SITE_ACCESS, "Gate locked")

        assert raised.escalated_to == gm_user
        assert raised not in visible_issues(session_for(dgm_user))
        assert list(visible_issues(session_for(gm_user))) == [raised]

    def test_staff_escalation_target_does_not_see_the_issue(
        self, issue, staff_user, other_staff_user, session_for,
    ):
        escalate(session_for(staff_user), issue.pk, other_staff_user)

        assert list(visible_issues(session_for(other_staff_user))) == []
        assert list(visible_issues(session_for(staff_user))) == [issue]

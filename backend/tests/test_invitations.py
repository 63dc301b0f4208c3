"""
Tests for the invitation issuer and validator/acceptor.

Tests:
- Issuing (authority, validation, conflicts, token storage, email flags)
- Validating and accepting (happy path, expiry, single use, rollback)
- Admin lifecycle (list, cancel, resend, rotate link)
"""
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.security import hash_token
from app.models import AuditLog, GlobalRole, Invitation, InvitationSite, SiteMembership, SiteRole, User
from app.services import email as email_service
from app.services.email import EmailSendResult
from app.services.errors import (
    AlreadyUsed,
    Conflict,
    Expired,
    Forbidden,
    NotFound,
    ValidationError,
)
from app.services.invitations import (
    InvitationStatus,
    accept_invitation,
    cancel_invitation,
    issue_invitation,
    list_invitations,
    resend_invitation,
    rotate_invitation_link,
    validate_invitation,
)
from app.services.invitations import invitation_service

PASSWORD = "Secret123!"


def expire(db, invitation_id, seconds_ago=1):
    invitation = db.query(Invitation).filter(Invitation.id == invitation_id).one()
    invitation.expires_at = datetime.now(timezone.utc) - timedelta(seconds=seconds_ago)
    db.commit()


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing email instead of talking to SMTP."""
    outbox = []

    def fake_send_email(to_email, subject, html_body, text_body=None, smtp_config=None):
        outbox.append({"to": to_email, "subject": subject, "text": text_body})
        return EmailSendResult(email_sent=True)

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return outbox


class TestIssueInvitation:
    """Tests for issue_invitation."""

    def test_global_admin_issues_invitation(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(
            db, actor_for(global_admin), "A@X.com", [{"site_id": site1.id, "site_role": "SITE_ADMIN"}],
        )

        assert issued.token
        assert issued.invitation.email == "a@x.com"
        assert issued.invitation.status == InvitationStatus.PENDING
        assert issued.invitation.invited_by_name == "root"
        assert [s.site_id for s in issued.invitation.sites] == [site1.id]
        assert issued.invite_url.startswith("https://infradb.example.com/auth/register?token=")
        assert parse_qs(urlparse(issued.invite_url).query)["token"] == [issued.token]

    def test_plaintext_token_is_never_stored(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])

        row = db.query(Invitation).one()
        assert row.token_hash == hash_token(issued.token)
        assert row.token_hash != issued.token
        for column in Invitation.__table__.columns:
            assert getattr(row, column.key) != issued.token
        for entry in db.query(AuditLog).all():
            assert issued.token not in str(entry.details)

    def test_default_expiry_is_seven_days(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        before = datetime.now(timezone.utc)
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        delta = issued.invitation.expires_at - before
        assert timedelta(days=7) - timedelta(minutes=1) < delta <= timedelta(days=7, minutes=1)

    @pytest.mark.parametrize("days", [0, 31, -1])
    def test_expiry_out_of_range(self, db, sites, global_admin, actor_for, days):
        site1, _ = sites
        with pytest.raises(ValidationError):
            issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")], expires_in_days=days)

    def test_assignment_order_is_kept(self, db, sites, global_admin, actor_for):
        site1, site2 = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [
            (site2.id, "SITE_USER"), (site1.id, "SITE_ADMIN"),
        ])
        assert [s.site_id for s in issued.invitation.sites] == [site2.id, site1.id]

    def test_empty_assignments_rejected(self, db, global_admin, actor_for):
        with pytest.raises(ValidationError):
            issue_invitation(db, actor_for(global_admin), "a@x.com", [])
        assert db.query(Invitation).count() == 0

    def test_duplicate_sites_rejected(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        with pytest.raises(ValidationError):
            issue_invitation(db, actor_for(global_admin), "a@x.com", [
                (site1.id, "SITE_USER"), (site1.id, "SITE_ADMIN"),
            ])

    def test_unknown_site(self, db, global_admin, actor_for):
        with pytest.raises(NotFound):
            issue_invitation(db, actor_for(global_admin), "a@x.com", [(424242, "SITE_USER")])

    def test_existing_user_email_conflicts(self, db, sites, make_user, global_admin, actor_for):
        site1, _ = sites
        make_user(email="taken@x.com")
        with pytest.raises(Conflict):
            issue_invitation(db, actor_for(global_admin), "Taken@X.com", [(site1.id, "SITE_USER")])

    def test_several_pending_invitations_for_same_email(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        first = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        second = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_ADMIN")])
        assert first.token != second.token
        assert db.query(Invitation).count() == 2

    def test_taken_username_rejected(self, db, sites, make_user, global_admin, actor_for):
        site1, _ = sites
        make_user(username="alice")
        with pytest.raises(ValidationError):
            issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")], username="alice")

    def test_site_admin_can_invite_to_own_site(self, db, sites, site_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(site_admin), "a@x.com", [(site1.id, "SITE_USER")])
        assert issued.invitation.invited_by == site_admin.id

    def test_site_admin_cannot_invite_to_foreign_site(self, db, sites, site_admin, actor_for):
        site1, site2 = sites
        with pytest.raises(Forbidden):
            issue_invitation(db, actor_for(site_admin), "a@x.com", [
                (site1.id, "SITE_USER"), (site2.id, "SITE_USER"),
            ])
        assert db.query(Invitation).count() == 0

    def test_plain_user_cannot_invite(self, db, sites, make_user, actor_for):
        site1, _ = sites
        user = make_user(sites={site1: SiteRole.SITE_USER})
        with pytest.raises(Forbidden):
            issue_invitation(db, actor_for(user), "a@x.com", [(site1.id, "SITE_USER")])


class TestInvitationEmail:
    """Email delivery is best effort."""

    def test_smtp_not_configured_is_reported_not_raised(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        assert issued.email_sent is False
        assert issued.email_error == "SMTP not configured"
        assert db.query(Invitation).count() == 1

    def test_email_sent_when_configured(self, db, sites, global_admin, actor_for, sent_emails):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        assert issued.email_sent is True
        assert issued.email_error is None
        assert sent_emails[0]["to"] == "a@x.com"
        assert issued.invite_url in sent_emails[0]["text"]

    def test_smtp_failure_still_creates_invitation(self, db, sites, global_admin, actor_for, monkeypatch):
        site1, _ = sites

        def failing_send(*args, **kwargs):
            return EmailSendResult(email_sent=False, email_error="Connection refused")

        monkeypatch.setattr(email_service, "send_email", failing_send)
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])

        assert issued.email_sent is False
        assert issued.email_error == "Connection refused"
        assert issued.token
        assert db.query(Invitation).count() == 1


class TestValidateAndAccept:
    """Tests for validate_invitation and accept_invitation."""

    def test_full_invitation_scenario(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_ADMIN")])

        summary = validate_invitation(db, issued.token)
        assert summary.email == "a@x.com"
        assert len(summary.sites) == 1
        assert summary.sites[0].site_role == SiteRole.SITE_ADMIN

        user = accept_invitation(db, issued.token, PASSWORD, username="alice")
        assert user.role == GlobalRole.USER
        assert user.email == "a@x.com"
        memberships = db.query(SiteMembership).filter(SiteMembership.user_id == user.id).all()
        assert [(m.site_id, m.site_role) for m in memberships] == [(site1.id, SiteRole.SITE_ADMIN)]

        with pytest.raises(AlreadyUsed):
            validate_invitation(db, issued.token)

    def test_username_from_invitation_is_used(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")], username="alice")
        user = accept_invitation(db, issued.token, PASSWORD)
        assert user.username == "alice"

    def test_username_required(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        with pytest.raises(ValidationError):
            accept_invitation(db, issued.token, PASSWORD)
        assert validate_invitation(db, issued.token).email == "a@x.com"

    def test_unknown_token(self, db):
        with pytest.raises(NotFound):
            validate_invitation(db, "not-a-real-token")
        with pytest.raises(NotFound):
            accept_invitation(db, "not-a-real-token", PASSWORD, username="x")

    def test_password_policy(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        with pytest.raises(ValidationError) as exc:
            accept_invitation(db, issued.token, "short", username="alice")
        assert len(exc.value.errors) == 4
        assert db.query(User).filter(User.email == "a@x.com").count() == 0

    def test_expired_invitation_fails_without_mutation(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        expire(db, issued.invitation.id)

        with pytest.raises(Expired):
            validate_invitation(db, issued.token)
        with pytest.raises(Expired):
            accept_invitation(db, issued.token, PASSWORD, username="alice")

        row = db.query(Invitation).one()
        assert row.used_at is None
        assert db.query(User).filter(User.email == "a@x.com").count() == 0

    def test_second_accept_fails(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        accept_invitation(db, issued.token, PASSWORD, username="alice")

        with pytest.raises(AlreadyUsed):
            accept_invitation(db, issued.token, PASSWORD, username="alice2")
        assert db.query(User).filter(User.email == "a@x.com").count() == 1

    def test_replay_with_weak_password_still_fails_already_used(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        accept_invitation(db, issued.token, PASSWORD, username="alice")

        with pytest.raises(AlreadyUsed):
            accept_invitation(db, issued.token, "weak", username="alice2")

    def test_expired_with_weak_password_still_fails_expired(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        expire(db, issued.invitation.id)

        with pytest.raises(Expired):
            accept_invitation(db, issued.token, "weak", username="alice")
        assert db.query(Invitation).one().used_at is None

    def test_racing_accept_loses_on_compare_and_set(self, db, sites, global_admin, actor_for, monkeypatch):
        """A second request whose pre-check passed before the first commit still fails."""
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        accept_invitation(db, issued.token, PASSWORD, username="alice")

        # Simulate the stale read of a concurrent request
        monkeypatch.setattr(invitation_service, "_ensure_usable", lambda invitation, now: None)

        with pytest.raises(AlreadyUsed):
            accept_invitation(db, issued.token, PASSWORD, username="bob")
        assert db.query(User).count() == 2  # root + alice
        assert db.query(User).filter(User.username == "bob").count() == 0

    def test_email_taken_meanwhile_rolls_back(self, db, sites, make_user, global_admin, actor_for):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        make_user(email="a@x.com", username="early")

        with pytest.raises(Conflict):
            accept_invitation(db, issued.token, PASSWORD, username="alice")

        # Token is not consumed by the failed attempt
        assert db.query(Invitation).one().used_at is None

    def test_failure_after_consume_leaves_no_partial_state(self, db, sites, global_admin, actor_for, monkeypatch):
        site1, _ = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])

        def broken_audit(*args, **kwargs):
            raise SQLAlchemyError("audit table unavailable")

        monkeypatch.setattr(invitation_service, "record_action", broken_audit)

        with pytest.raises(SQLAlchemyError):
            accept_invitation(db, issued.token, PASSWORD, username="alice")

        assert db.query(User).filter(User.email == "a@x.com").count() == 0
        assert db.query(SiteMembership).filter(SiteMembership.site_id == site1.id).count() == 0
        assert db.query(Invitation).one().used_at is None

    def test_taken_username_on_accept(self, db, sites, make_user, global_admin, actor_for):
        site1, _ = sites
        make_user(username="alice")
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER")])
        with pytest.raises(ValidationError):
            accept_invitation(db, issued.token, PASSWORD, username="alice")
        assert db.query(Invitation).one().used_at is None


class TestInvitationAdministration:
    """List, cancel, resend and rotate."""

    def test_list_newest_first_with_status(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        first = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        second = issue_invitation(db, actor, "b@x.com", [(site1.id, "SITE_USER")])
        expire(db, first.invitation.id)

        listed = list_invitations(db, actor)

        assert [i.id for i in listed] == [second.invitation.id, first.invitation.id]
        assert [i.status for i in listed] == [InvitationStatus.PENDING, InvitationStatus.EXPIRED]
        assert listed[0].sites[0].site_code == "AMS1"

    def test_accepted_hidden_unless_requested(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        accept_invitation(db, issued.token, PASSWORD, username="alice")

        assert list_invitations(db, actor) == []
        listed = list_invitations(db, actor, include_used=True)
        assert listed[0].status == InvitationStatus.ACCEPTED

    def test_site_admin_sees_only_own_site_invitations(self, db, sites, global_admin, site_admin, actor_for):
        site1, site2 = sites
        ga = actor_for(global_admin)
        mine = issue_invitation(db, ga, "a@x.com", [(site1.id, "SITE_USER")])
        issue_invitation(db, ga, "b@x.com", [(site2.id, "SITE_USER")])
        issue_invitation(db, ga, "c@x.com", [(site1.id, "SITE_USER"), (site2.id, "SITE_USER")])

        listed = list_invitations(db, actor_for(site_admin))

        assert [i.id for i in listed] == [mine.invitation.id]

    def test_cancel_pending(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        cancel_invitation(db, actor, issued.invitation.id)
        assert db.query(Invitation).count() == 0
        assert db.query(InvitationSite).count() == 0
        with pytest.raises(NotFound):
            validate_invitation(db, issued.token)

    def test_cancel_expired(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        expire(db, issued.invitation.id)
        cancel_invitation(db, actor, issued.invitation.id)
        assert db.query(Invitation).count() == 0

    def test_cancel_accepted_conflicts(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        accept_invitation(db, issued.token, PASSWORD, username="alice")
        with pytest.raises(Conflict):
            cancel_invitation(db, actor, issued.invitation.id)
        assert db.query(Invitation).count() == 1

    def test_cancel_foreign_invitation_is_not_found_for_site_admin(self, db, sites, global_admin, site_admin, actor_for):
        _, site2 = sites
        issued = issue_invitation(db, actor_for(global_admin), "a@x.com", [(site2.id, "SITE_USER")])
        with pytest.raises(NotFound):
            cancel_invitation(db, actor_for(site_admin), issued.invitation.id)
        assert db.query(Invitation).count() == 1

    def test_resend_rotates_token_and_expiry(self, db, sites, global_admin, actor_for, sent_emails):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")], expires_in_days=1)

        resent = resend_invitation(db, actor, issued.invitation.id, expires_in_days=14)

        assert resent.token != issued.token
        assert resent.email_sent is True
        assert resent.invitation.expires_at > issued.invitation.expires_at
        assert len(sent_emails) == 2
        with pytest.raises(NotFound):
            validate_invitation(db, issued.token)
        assert validate_invitation(db, resent.token).email == "a@x.com"

    def test_resend_expired_is_not_reactivated(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        expire(db, issued.invitation.id)
        with pytest.raises(Expired):
            resend_invitation(db, actor, issued.invitation.id)

    def test_resend_accepted_fails(self, db, sites, global_admin, actor_for):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])
        accept_invitation(db, issued.token, PASSWORD, username="alice")
        with pytest.raises(AlreadyUsed):
            resend_invitation(db, actor, issued.invitation.id)

    def test_rotate_link_keeps_expiry(self, db, sites, global_admin, actor_for, sent_emails):
        site1, _ = sites
        actor = actor_for(global_admin)
        issued = issue_invitation(db, actor, "a@x.com", [(site1.id, "SITE_USER")])

        rotated = rotate_invitation_link(db, actor, issued.invitation.id)

        assert rotated.token != issued.token
        assert rotated.email_sent is False
        assert rotated.invitation.expires_at == issued.invitation.expires_at
        assert len(sent_emails) == 1  # only the original issue
        with pytest.raises(NotFound):
            accept_invitation(db, issued.token, PASSWORD, username="alice")
        user = accept_invitation(db, rotated.token, PASSWORD, username="alice")
        assert user.email == "a@x.com"

    def test_deleting_inviter_removes_their_invitations(self, db, sites, make_user, global_admin, actor_for):
        site1, _ = sites
        other_admin = make_user(role=GlobalRole.GLOBAL_ADMIN)
        issue_invitation(db, actor_for(other_admin), "a@x.com", [(site1.id, "SITE_USER")])

        db.delete(other_admin)
        db.commit()

        assert db.query(Invitation).count() == 0
        assert db.query(InvitationSite).count() == 0

    def test_deleting_site_removes_invitation_assignments(self, db, sites, global_admin, actor_for):
        site1, site2 = sites
        issue_invitation(db, actor_for(global_admin), "a@x.com", [(site1.id, "SITE_USER"), (site2.id, "SITE_USER")])

        db.delete(site1)
        db.commit()

        assert [s.site_id for s in db.query(InvitationSite).all()] == [site2.id]

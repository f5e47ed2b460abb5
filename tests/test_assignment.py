"""Assignment resolver tests, including concurrent assigns on one rescue."""

import threading

import pytest

from rescue_engine.core.errors import AlreadyAssigned, AlreadyResolved, Forbidden, InvalidCandidate
from rescue_engine.models import Notification, RescueCandidate
from rescue_engine.services import assignment_service, candidate_service, rescue_service

from conftest import TestingSessionLocal


def _rescue(db, owner):
    return rescue_service.create_rescue(db, owner, -38.0055, -57.5426)


def test_assign_individual_rejects_the_rest(db, new_id, add_member):
    owner, helper, team, member = new_id(), new_id(), new_id(), new_id()
    add_member(team, member)
    rescue = _rescue(db, owner)
    a = candidate_service.register(db, rescue.id, helper)
    b = candidate_service.register(db, rescue.id, member, team_id=team)

    assigned = assignment_service.assign(db, rescue.id, a.id, owner)
    assert assigned.assigned_rescuer_id == helper
    assert assigned.assigned_team_id is None
    # assignment does not resolve
    assert assigned.status == "pending"

    statuses = {c.id: c.status for c in candidate_service.list_candidates(db, rescue.id)}
    assert statuses == {a.id: "accepted", b.id: "rejected"}

    helper_notes = db.query(Notification).filter(Notification.user_id == helper).all()
    member_notes = db.query(Notification).filter(Notification.user_id == member).all()
    assert [n.type for n in helper_notes] == ["rescue_assigned"]
    assert [n.type for n in member_notes] == ["rescue_candidate_rejected"]


def test_assign_team(db, new_id, add_member):
    owner, team, m1, m2 = new_id(), new_id(), new_id(), new_id()
    add_member(team, m1, m2)
    rescue = _rescue(db, owner)
    offer = candidate_service.register(db, rescue.id, m1, team_id=team)

    assigned = assignment_service.assign(db, rescue.id, offer.id, owner)
    assert assigned.assigned_team_id == team
    assert assigned.assigned_rescuer_id is None
    assert rescue_service.party_user_ids(db, assigned) == [owner, m1, m2]


def test_assign_checks(db, new_id):
    owner, helper = new_id(), new_id()
    rescue = _rescue(db, owner)
    a = candidate_service.register(db, rescue.id, helper)
    b = candidate_service.register(db, rescue.id, new_id())

    with pytest.raises(Forbidden):
        assignment_service.assign(db, rescue.id, a.id, helper)

    other = _rescue(db, owner)
    with pytest.raises(InvalidCandidate):
        assignment_service.assign(db, other.id, a.id, owner)

    candidate_service.reject(db, rescue.id, b.id, owner)
    with pytest.raises(InvalidCandidate):
        assignment_service.assign(db, rescue.id, b.id, owner)

    assignment_service.assign(db, rescue.id, a.id, owner)
    with pytest.raises(AlreadyAssigned):
        assignment_service.assign(db, rescue.id, a.id, owner)

    rescue_service.mark_resolved(db, rescue.id, owner)
    with pytest.raises(AlreadyResolved):
        assignment_service.assign(db, rescue.id, a.id, owner)


def test_update_assignment_is_compare_and_set(db, new_id):
    owner = new_id()
    rescue = _rescue(db, owner)
    rescue_service.update_assignment(db, rescue.id, rescuer_id=new_id())
    db.commit()
    with pytest.raises(AlreadyAssigned):
        rescue_service.update_assignment(db, rescue.id, team_id=new_id())
    db.rollback()


def test_concurrent_assigns_single_winner(db, new_id):
    owner = new_id()
    rescue = _rescue(db, owner)
    helpers = [new_id() for _ in range(6)]
    offers = [candidate_service.register(db, rescue.id, h).id for h in helpers]
    rescue_id = rescue.id

    barrier = threading.Barrier(len(offers))
    results: dict[int, object] = {}

    def attempt(candidate_id):
        session = TestingSessionLocal()
        try:
            barrier.wait()
            assignment_service.assign(session, rescue_id, candidate_id, owner)
            results[candidate_id] = "ok"
        except Exception as exc:
            results[candidate_id] = exc
        finally:
            session.close()

    threads = [threading.Thread(target=attempt, args=(cid,)) for cid in offers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    winners = [cid for cid, r in results.items() if r == "ok"]
    losers = [r for r in results.values() if r != "ok"]
    assert len(winners) == 1
    assert len(losers) == len(offers) - 1
    assert all(isinstance(r, AlreadyAssigned) for r in losers)

    db.expire_all()
    final = rescue_service.get_rescue(db, rescue_id)
    assert final.assigned_rescuer_id == helpers[offers.index(winners[0])]
    assert final.assigned_team_id is None
    rows = db.query(RescueCandidate).filter(RescueCandidate.rescue_id == rescue_id).all()
    assert sorted(c.status for c in rows) == ["accepted"] + ["rejected"] * (len(offers) - 1)

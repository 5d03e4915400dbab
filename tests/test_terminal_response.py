from app.domain.families.registry import rules_for
from app.domain.models.document import DocumentFamily, DocumentState
from app.domain.models.gateway_response import GatewayResponse
from app.domain.models.message import Message

from conftest import COMPLETE_BODY, INCOMPLETE_BODY, drive_to, make_invoice


def _in_flight_and_polling(repo, poll_manager):
    document = repo.add(make_invoice())
    drive_to(repo, document.id, DocumentState.IN_FLIGHT)
    poll_manager.start_polling(document.id, rules_for(DocumentFamily.INVOICE).correlation(repo.get(document.id)))
    return document


def _response(document_id, status, body):
    return Message(document_id=document_id, family=DocumentFamily.INVOICE, status=status,
                   payload={"correlation_id": "msg-1", "response": body})


def test_success_response_completes_and_stops_polling(repo, poll_manager, notifier, scheduler, terminal_consumer):
    document = _in_flight_and_polling(repo, poll_manager)

    assert terminal_consumer.execute(_response(document.id, "success", COMPLETE_BODY))

    assert repo.get(document.id).state == DocumentState.COMPLETED
    assert len(notifier.calls) == 1
    assert not poll_manager.is_polling(document.id)
    assert scheduler.run_pending() == 0


def test_consumer_then_poll_produces_one_terminal_write(
    repo, poll_manager, gateway, notifier, scheduler, broker, terminal_consumer,
):
    document = _in_flight_and_polling(repo, poll_manager)
    gateway.query_script = [GatewayResponse.from_nubefact(COMPLETE_BODY)]

    assert terminal_consumer.execute(_response(document.id, "success", COMPLETE_BODY))
    # Una consulta forzada tardía ya no encuentra tarea ni escribe nada
    assert not poll_manager.check_now(document.id)
    scheduler.run_pending()

    assert len(notifier.calls) == 1
    assert broker.messages("invoice-responses") == []


def test_poll_then_consumer_produces_one_terminal_write(
    repo, poll_manager, gateway, notifier, scheduler, broker, terminal_consumer,
):
    document = _in_flight_and_polling(repo, poll_manager)
    gateway.query_script = [GatewayResponse.from_nubefact(COMPLETE_BODY)]

    scheduler.run_pending()
    [published] = broker.messages("invoice-responses")
    assert not terminal_consumer.execute(published)
    assert not terminal_consumer.execute(published)

    assert repo.get(document.id).state == DocumentState.COMPLETED
    assert len(notifier.calls) == 1


def test_error_response_fails_document(repo, poll_manager, notifier, terminal_consumer):
    document = _in_flight_and_polling(repo, poll_manager)

    assert terminal_consumer.execute(_response(document.id, "error", {"error": "rechazado"}))

    loaded = repo.get(document.id)
    assert loaded.state == DocumentState.FAILED
    assert "rechazado" in loaded.last_error
    assert notifier.calls == []
    assert not poll_manager.is_polling(document.id)


def test_success_without_all_links_keeps_polling(repo, poll_manager, terminal_consumer):
    document = _in_flight_and_polling(repo, poll_manager)

    assert not terminal_consumer.execute(_response(document.id, "success", INCOMPLETE_BODY))

    assert repo.get(document.id).state == DocumentState.IN_FLIGHT
    assert poll_manager.is_polling(document.id)


def test_success_with_links_but_not_accepted_keeps_polling(repo, poll_manager, notifier, terminal_consumer):
    document = _in_flight_and_polling(repo, poll_manager)
    body = dict(COMPLETE_BODY, aceptada_por_sunat=False)

    assert not terminal_consumer.execute(_response(document.id, "success", body))

    assert repo.get(document.id).state == DocumentState.IN_FLIGHT
    assert notifier.calls == []
    assert poll_manager.is_polling(document.id)


def test_response_for_finalized_document_is_ignored(repo, poll_manager, notifier, terminal_consumer):
    document = _in_flight_and_polling(repo, poll_manager)
    repo.transition(document.id, DocumentState.IN_FLIGHT, DocumentState.FAILED, error="Timeout")

    assert not terminal_consumer.execute(_response(document.id, "success", COMPLETE_BODY))

    loaded = repo.get(document.id)
    assert loaded.state.is_terminal
    assert loaded.last_error == "Timeout"
    assert notifier.calls == []
    assert not poll_manager.is_polling(document.id)

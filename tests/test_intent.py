import pytest

from sdr import intent
from sdr.intent import Intent

PREFERENCE_QUESTION = (
    "Antes de te passar os detalhes: você prefere ser atendido por um consultor humano "
    "ou quer que eu mesma continue o atendimento por aqui?"
)


def test_extract_property_code_is_accent_and_case_tolerant():
    assert intent.extract_property_code("Olá! Código do imóvel: 42") == 42
    assert intent.extract_property_code("codigo do imovel 7, tenho interesse") == 7
    assert intent.extract_property_code("quero ver o imóvel") is None


def test_asked_preference_detects_question():
    assert intent.asked_preference(PREFERENCE_QUESTION)
    assert not intent.asked_preference("Temos um apartamento no Centro por R$ 250 mil.")


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Prefiro falar com um corretor", Intent.CHOOSE_HUMAN),
        ("quero um atendente humano", Intent.CHOOSE_HUMAN),
        ("pode continuar você mesma", Intent.CHOOSE_AGENT),
        ("Pode ser você!", Intent.CHOOSE_AGENT),
        ("tanto faz", Intent.NONE),
    ],
)
def test_classify_preference(message, expected):
    assert intent.classify_preference(message) is expected


def test_human_wins_when_both_choices_are_mentioned():
    assert intent.classify_preference("pode ser você, mas depois quero um corretor") is Intent.CHOOSE_HUMAN


def test_photo_request_explicit():
    assert intent.classify_photo_request("me manda foto") is Intent.PHOTO_REQUEST
    assert intent.classify_photo_request("Quero saber mais sobre o apartamento") is Intent.PHOTO_REQUEST


def test_short_affirmative_needs_a_photo_offer():
    offer = "Quer ver as fotos desse imóvel?"
    assert intent.classify_photo_request("sim", None) is Intent.NONE
    assert intent.classify_photo_request("sim", "Tudo bem com você?") is Intent.NONE
    assert intent.classify_photo_request("Sim!", offer) is Intent.PHOTO_REQUEST
    assert intent.classify_photo_request("pode mandar", offer) is Intent.PHOTO_REQUEST


def test_long_message_is_not_a_short_affirmative():
    assert not intent.is_short_affirmative("sim mas antes queria entender melhor o bairro")


def test_scheduling_checks_message_and_reply():
    assert intent.classify_scheduling("Posso marcar para sábado?") is Intent.SCHEDULE_VISIT
    assert intent.classify_scheduling("ok", "Quer agendar uma visita?") is Intent.SCHEDULE_VISIT
    assert intent.classify_scheduling("ok", "Perfeito!") is Intent.NONE


def test_looks_like_listing():
    assert intent.looks_like_listing("🏠 Apartamento Centro - R$ 250.000")
    assert intent.looks_like_listing("x" * 301)
    assert not intent.looks_like_listing("Oi, tudo bem?")


@pytest.mark.parametrize(
    "message, expected",
    [
        ("o primeiro", [0]),
        ("gostei da segunda", [1]),
        ("quero ver o 1 e o 2", [0, 1]),
        ("ambas!", [intent.ALL_POSITIONS]),
        ("me manda", []),
    ],
)
def test_ordinal_positions(message, expected):
    assert intent.ordinal_positions(message) == expected

from sdr import catalog

APARTMENT = {
    "id": 3,
    "Título": "Apartamento Centro",
    "Tipo": {"id": 1, "value": "Apartamento"},
    "Bairro": "Centro",
    "Cidade": "Itaquaquecetuba",
    "Valor": "R$ 250.000",
    "Imagens": "/img/a.jpg, https://cdn.example.com/b.jpg\n/img/c.jpg\n/img/d.jpg",
}
HOUSE = {"id": 4, "Title": "Casa Jardim Fiorello", "Type": "Casa", "Bairro": "Jardim Fiorello", "Active": False}


def test_field_aliases_and_single_select_values():
    assert catalog.title(APARTMENT) == "Apartamento Centro"
    assert catalog.field(APARTMENT, "type") == "Apartamento"
    assert catalog.field(APARTMENT, "price") == "R$ 250.000"
    assert catalog.address(APARTMENT) == "Centro, Itaquaquecetuba"


def test_inactive_rows_are_filtered():
    assert catalog.is_active(APARTMENT) is True
    assert catalog.is_active(HOUSE) is False


def test_image_urls_are_absolute_and_capped():
    assert catalog.image_urls(APARTMENT) == [
        "https://bs-consultoria.vercel.app/img/a.jpg",
        "https://cdn.example.com/b.jpg",
        "https://bs-consultoria.vercel.app/img/c.jpg",
    ]


def test_details_message_has_defaults():
    text = catalog.details_message({"Title": "Casa"})
    assert text.startswith("📍 *Casa*")
    assert "🚗 *Vagas:* 1" in text
    assert "Financiamento disponível" in text


def test_mentioned_in_follows_listing_order():
    listing = "🏡 Casa Jardim Fiorello - R$ 400.000\n🏠 Apartamento Centro - R$ 250.000"
    assert [p["id"] for p in catalog.mentioned_in(listing, [APARTMENT, HOUSE])] == [4, 3]


def test_type_and_neighborhood_match():
    assert catalog.match_type_and_neighborhood("tem apartamento no centro?", [HOUSE, APARTMENT]) is APARTMENT
    assert catalog.match_type_and_neighborhood("tem casa no centro?", [HOUSE, APARTMENT]) is None


def test_weak_match_needs_long_word():
    assert catalog.weak_title_match("gostei do fiorello", [APARTMENT, HOUSE]) is HOUSE
    assert catalog.weak_title_match("e o de 2?", [APARTMENT, HOUSE]) is None


def test_ai_projection_skips_untitled_rows():
    items = catalog.format_properties_for_ai([APARTMENT, {"id": 9}])
    assert [i["id"] for i in items] == [3]
    assert items[0]["tipo"] == "Apartamento"

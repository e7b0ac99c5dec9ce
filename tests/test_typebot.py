from sdr.typebot import extract_lead_info, extract_phone, format_lead_for_ai


def test_phone_from_direct_field_gets_country_code():
    assert extract_phone({"phone": "(11) 97777-6666"}) == "5511977776666"


def test_phone_from_variables():
    payload = {"variables": [{"name": "Telefone", "value": "11 97777-6666"}]}
    assert extract_phone(payload) == "5511977776666"


def test_missing_phone_is_none():
    assert extract_phone({"answers": [{"blockId": "nome", "value": "Ana"}]}) is None


def test_lead_info_maps_form_answers():
    payload = {
        "name": "Ana",
        "answers": [
            {"blockId": "tipoImovel", "value": "Apartamento"},
            {"blockId": "budgetCompra", "value": "até R$ 300 mil"},
        ],
        "variables": [{"name": "prazo", "value": "3 meses"}],
    }
    info = extract_lead_info(payload)

    assert info["source"] == "typebot"
    assert info["name"] == "Ana"
    assert info["tipoImovel"] == "Apartamento"
    assert info["budgetCompra"] == "até R$ 300 mil"
    assert info["prazo"] == "3 meses"
    assert info["answers"] == {"tipoImovel": "Apartamento", "budgetCompra": "até R$ 300 mil"}
    assert info["email"] is None


def test_lead_block_for_prompt_lists_known_fields():
    block = format_lead_for_ai({"name": "Ana", "tipoImovel": "Casa", "email": None})
    assert block.startswith("INFORMAÇÕES DO LEAD (via Typebot):")
    assert "Nome: Ana" in block
    assert "Tipo de imóvel: Casa" in block
    assert "Email" not in block

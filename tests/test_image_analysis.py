import asyncio
from types import SimpleNamespace

import httpx

from sitelog.schemas.log import ImageAttachment, TaskEntry
from sitelog.services.image_analysis import ImageAnalyzer, UNIDENTIFIED_MARKER, clean_suggestion


class FakeModels:
    def __init__(self, answers):
        self.answers = list(answers)
        self.requests = []

    def generate_content(self, model, contents):
        self.requests.append((model, contents))
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return SimpleNamespace(text=answer)


def make_analyzer(tmp_path, answers):
    models = FakeModels(answers)
    client = SimpleNamespace(models=models)
    analyzer = ImageAnalyzer(api_key="", model="gemini-test", upload_dir=str(tmp_path), client=client)
    return analyzer, models


def write_image(tmp_path, name):
    path = tmp_path / "2024" / "03" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    return f"2024/03/{name}"


def test_missing_api_key_degrades_to_no_suggestions(tmp_path):
    analyzer = ImageAnalyzer(api_key="", upload_dir=str(tmp_path))
    images = [ImageAttachment(id="a", file_path=write_image(tmp_path, "a.jpg"))]

    assert analyzer.available is False
    assert asyncio.run(analyzer.analyze_images(images, ["Reboco"])) == []
    assert asyncio.run(analyzer.suggest_location("Reboco", [])) == ""


def test_analyze_images_keeps_usable_answers_only(tmp_path):
    analyzer, models = make_analyzer(tmp_path, [
        '"Instalação de formas para viga."',
        f"{UNIDENTIFIED_MARKER}.",
        httpx.ConnectError("network down"),
    ])
    images = [
        ImageAttachment(id="a", file_path=write_image(tmp_path, "a.jpg")),
        ImageAttachment(id="b", file_path=write_image(tmp_path, "b.png")),
        ImageAttachment(id="c", file_path=write_image(tmp_path, "c.jpg")),
        ImageAttachment(id="d", file_path="2024/03/missing.jpg"),
    ]
    history = ["Reboco", "Pintura", "Alvenaria", "Forma", "Laje", "Escavação"]

    results = asyncio.run(analyzer.analyze_images(images, history))

    assert [(r.id, r.image_id, r.suggestion) for r in results] == [
        ("result-a", "a", "Instalação de formas para viga"),
    ]
    # The missing file never reached the API
    assert len(models.requests) == 3
    model, contents = models.requests[0]
    assert model == "gemini-test"
    prompt = contents[1]
    assert "Reboco, Pintura, Alvenaria, Forma, Laje" in prompt
    assert "Escavação" not in prompt


def test_suggest_location(tmp_path):
    analyzer, models = make_analyzer(tmp_path, ["  Fachada Leste \n"])
    history = [TaskEntry(text="Reboco", location="Fachada Leste")]

    assert asyncio.run(analyzer.suggest_location("Reboco externo", history)) == "Fachada Leste"
    prompt = models.requests[0][1]
    assert '- "Reboco" no local "Fachada Leste"' in prompt
    assert 'Nova Tarefa: "Reboco externo"' in prompt


def test_suggest_location_failure_returns_empty(tmp_path):
    analyzer, _ = make_analyzer(tmp_path, [httpx.ReadTimeout("slow")])
    assert asyncio.run(analyzer.suggest_location("Reboco", [])) == ""


def test_clean_suggestion():
    assert clean_suggestion('"Armação de pilar."') == "Armação de pilar"

"""
Tests for document chunking, keyword search and document processing.
"""
import asyncio
import httpx
import pytest
from knowledge.chunking import chunk_spans, split_into_chunks, normalize_text, estimate_tokens, CHUNK_SIZE, CHUNK_OVERLAP
from knowledge.models import KnowledgeDocument, KnowledgeChunk
from knowledge.search import rank_chunks, extract_query_words
from knowledge.service import process_document, html_to_text

SENTENCE = "Nosso atendimento funciona de segunda a sexta e entregamos em toda a cidade. "


def long_text(length=2500):
    return normalize_text((SENTENCE * (length // len(SENTENCE) + 2))[:length])


class TestChunking:

    def test_2500_chars_overlap_and_reconstruct(self):
        """Spans overlap by 200 and their non-overlapping parts rebuild the text"""
        text = long_text(2500)
        spans = chunk_spans(text, CHUNK_SIZE, CHUNK_OVERLAP)

        assert len(spans) >= 3
        assert spans[0][0] == 0
        assert spans[-1][1] == len(text)

        rebuilt = text[spans[0][0]:spans[0][1]]
        for (prev_start, prev_end), (start, end) in zip(spans, spans[1:]):
            assert end - start <= CHUNK_SIZE
            assert start > prev_start
            assert prev_end - start == CHUNK_OVERLAP
            rebuilt += text[prev_end:end]
        assert rebuilt == text

    @pytest.mark.parametrize("source", [
        long_text(2500),
        ("palavra " * 400)[:2500],
    ])
    def test_stored_chunks_rebuild_normalized_text(self, source):
        """The chunk strings themselves, minus the overlap, rebuild the normalized text"""
        text = normalize_text(source)
        chunks = split_into_chunks(source)

        assert len(chunks) >= 3
        rebuilt = chunks[0] + "".join(chunk[CHUNK_OVERLAP:] for chunk in chunks[1:])
        assert rebuilt == text

    def test_chunks_prefer_sentence_breaks(self):
        spans = chunk_spans(long_text(2500))
        for _, end in spans[:-1]:
            assert long_text(2500)[end - 1] == "."

    def test_short_text_single_chunk(self):
        assert split_into_chunks("  Aceitamos   cartão\n e pix  ") == ["Aceitamos cartão e pix"]

    def test_empty_text(self):
        assert chunk_spans("") == []
        assert split_into_chunks("   ") == []

    def test_unbroken_text_hard_split(self):
        spans = chunk_spans("x" * 2500)
        assert spans[0] == (0, 1000)
        assert spans[1][0] == 800

    def test_estimate_tokens(self):
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestKeywordSearch:

    def test_opening_hours_example(self):
        chunks = ["O horário é 9h às 18h", "Aceitamos cartão e pix"]
        assert rank_chunks(chunks, "qual o horário de funcionamento") == ["O horário é 9h às 18h"]

    def test_short_words_ignored(self):
        assert extract_query_words("o que é de pix") == ["que", "pix"]

    def test_ranking_and_limit(self):
        chunks = ["pix", "pix e cartão", "boleto", "cartão"]
        assert rank_chunks(chunks, "pix cartão", limit=2) == ["pix e cartão", "pix"]

    def test_no_usable_words(self):
        assert rank_chunks(["qualquer coisa"], "o e a") == []


class TestDocumentProcessing:

    def test_manual_document(self, db_session, sample_workspace):
        document = KnowledgeDocument(workspace_id=sample_workspace.id, title="Políticas", source_type="manual", content=long_text(2500))
        db_session.add(document)
        db_session.commit()

        document = asyncio.run(process_document(db_session, document))

        assert document.status == "completed"
        chunks = db_session.query(KnowledgeChunk).filter(KnowledgeChunk.document_id == document.id).order_by(KnowledgeChunk.chunk_index).all()
        assert document.chunks_count == len(chunks) >= 3
        assert chunks[0].tokens_count == estimate_tokens(chunks[0].content)

    def test_reprocess_replaces_chunks(self, db_session, sample_workspace):
        document = KnowledgeDocument(workspace_id=sample_workspace.id, title="FAQ", source_type="manual", content="Aceitamos pix.")
        db_session.add(document)
        db_session.commit()

        asyncio.run(process_document(db_session, document))
        asyncio.run(process_document(db_session, document))
        assert db_session.query(KnowledgeChunk).count() == 1

    def test_url_document_strips_markup(self, db_session, sample_workspace):
        html = "<html><head><script>var x = 1;</script></head><body><h1>Loja</h1><p>Entregamos aos sábados.</p></body></html>"
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=html))
        document = KnowledgeDocument(workspace_id=sample_workspace.id, title="Site", source_type="url", source_url="https://loja.test")
        db_session.add(document)
        db_session.commit()

        document = asyncio.run(process_document(db_session, document, transport=transport))
        assert document.status == "completed"
        assert document.content == "Loja Entregamos aos sábados."

    def test_failed_fetch_marks_document(self, db_session, sample_workspace):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        document = KnowledgeDocument(workspace_id=sample_workspace.id, title="Site", source_type="url", source_url="https://loja.test/404")
        db_session.add(document)
        db_session.commit()

        document = asyncio.run(process_document(db_session, document, transport=transport))
        assert document.status == "failed"
        assert "404" in document.error_message

    def test_html_to_text(self):
        assert html_to_text("<style>p{}</style><p>Oi</p>") == "Oi"


class TestKnowledgeAPI:

    def test_create_process_and_search(self, client, auth_headers, sample_workspace):
        response = client.post(
            "/knowledge/documents",
            json={"title": "FAQ", "content": "O horário é 9h às 18h."},
            headers=auth_headers
        )
        assert response.status_code == 200
        document_id = response.json()["id"]

        response = client.post(f"/knowledge/documents/{document_id}/process", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

        response = client.post("/knowledge/search", json={"query": "qual o horário"}, headers=auth_headers)
        assert response.json()["results"] == ["O horário é 9h às 18h."]

    def test_manual_document_requires_content(self, client, auth_headers, sample_workspace):
        response = client.post("/knowledge/documents", json={"title": "Vazio"}, headers=auth_headers)
        assert response.status_code == 400

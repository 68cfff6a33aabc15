"""
Tests for the synthesis orchestrator: state transitions, tensor contracts,
the denoise chain and failure tagging.
"""

import asyncio

import numpy as np
import pytest
import soundfile as sf

from voiceclone.metrics import SYNTHESIS_TOTAL, UNKNOWN_TOKENS
from voiceclone.tts.errors import (
    DecodeError,
    EmptyInputError,
    EncodeError,
    StageInvocationError,
    SynthesisError,
)
from voiceclone.tts.pipeline import SynthesisContext, SynthesisOrchestrator, SynthesisState
from conftest import DECODED_SAMPLES, NOISE_SHAPE, VOCAB_TOKENS


def _id(token):
    return VOCAB_TOKENS.index(token)


class TestSynthesisRun:
    def test_full_run_writes_audio(self, orchestrator, make_request, tmp_path):
        out = tmp_path / "out" / "generated.wav"
        run = orchestrator.run(make_request(), out)

        assert run.state is SynthesisState.DONE
        assert run.history == [
            SynthesisState.INIT,
            SynthesisState.TOKENIZE,
            SynthesisState.PREPROCESS,
            SynthesisState.DENOISE,
            SynthesisState.DECODE,
            SynthesisState.ENCODE,
            SynthesisState.DONE,
        ]
        assert run.output_path == out
        data, rate = sf.read(str(out), dtype="float32")
        assert rate == 24000
        assert data.shape == (DECODED_SAMPLES,)
        np.testing.assert_allclose(data, 0.25)

    def test_synthesize_returns_path(self, orchestrator, make_request, tmp_path):
        out = tmp_path / "generated.wav"
        assert orchestrator.synthesize(make_request(), out) == out
        assert out.exists()

    def test_preprocess_receives_expected_tensors(self, orchestrator, make_request, preprocess_session, tmp_path):
        run = orchestrator.run(make_request(), tmp_path / "out.wav")

        # 48000 samples / 256 hop -> 188 frames; 188 + floor(188 * 11 / 5) = 601
        assert run.max_duration == 601

        _, feeds = preprocess_session.run.call_args.args
        assert feeds["audio"].dtype == np.float32
        assert feeds["audio"].shape == (1, 1, 48000)
        assert feeds["max_duration"].dtype == np.int64
        assert feeds["max_duration"].tolist() == [601]
        assert feeds["text_ids"].dtype == np.int32

        expected = [_id(ch) for ch in "hellohello world"]
        assert feeds["text_ids"].tolist() == [expected]
        assert run.token_count == len(expected)

    def test_reference_audio_is_normalized(self, orchestrator, make_request, preprocess_session, reference_wav, tmp_path):
        orchestrator.run(make_request(), tmp_path / "out.wav")
        _, feeds = preprocess_session.run.call_args.args
        raw, _ = sf.read(str(reference_wav), dtype="int16")
        np.testing.assert_allclose(feeds["audio"].reshape(-1), raw / 32768.0, atol=1e-7)


class TestDenoiseChain:
    def test_invoked_exactly_nfe_steps_times(self, orchestrator, make_request, denoise_session, tmp_path):
        run = orchestrator.run(make_request(), tmp_path / "out.wav")
        assert denoise_session.run.call_count == 4
        assert run.denoise_steps == 4

    def test_each_step_consumes_previous_output(self, orchestrator, make_request, denoise_session, preprocess_session, tmp_path):
        outputs = []

        def fake_run(names, feeds):
            out = feeds["noise"] + 1.0
            outputs.append(out)
            return [out]

        denoise_session.run.side_effect = fake_run
        orchestrator.run(make_request(), tmp_path / "out.wav")

        calls = denoise_session.run.call_args_list
        first_noise = preprocess_session.run.return_value[0]
        assert calls[0].args[1]["noise"] is first_noise
        for i, call in enumerate(calls[1:]):
            assert call.args[1]["noise"] is outputs[i]

    def test_rope_tensors_threaded_unchanged(self, orchestrator, make_request, denoise_session, preprocess_session, tmp_path):
        orchestrator.run(make_request(), tmp_path / "out.wav")
        _, rope_cos, rope_sin = preprocess_session.run.return_value
        for call in denoise_session.run.call_args_list:
            assert call.args[1]["rope_cos"] is rope_cos
            assert call.args[1]["rope_sin"] is rope_sin

    def test_decode_receives_final_noise(self, orchestrator, make_request, decode_session, tmp_path):
        orchestrator.run(make_request(), tmp_path / "out.wav")
        _, feeds = decode_session.run.call_args.args
        np.testing.assert_array_equal(feeds["noise"], np.full(NOISE_SHAPE, 4.0, dtype=np.float32))

    def test_zero_steps_decodes_preprocess_noise(self, context, make_request, denoise_session, decode_session, tmp_path):
        orchestrator = SynthesisOrchestrator(
            SynthesisContext(
                config=context.config.replace(nfe_steps=0),
                vocab=context.vocab,
                stages=context.stages,
                metrics=context.metrics,
            )
        )
        orchestrator.run(make_request(), tmp_path / "out.wav")
        denoise_session.run.assert_not_called()
        _, feeds = decode_session.run.call_args.args
        np.testing.assert_array_equal(feeds["noise"], np.zeros(NOISE_SHAPE, dtype=np.float32))


class TestFailures:
    def test_empty_reference_text_fails_before_model_calls(self, orchestrator, make_request, preprocess_session, tmp_path):
        out = tmp_path / "out.wav"
        with pytest.raises(EmptyInputError) as excinfo:
            orchestrator.run(make_request(reference_text="", generation_text="hello"), out)

        assert excinfo.value.state == "TOKENIZE"
        preprocess_session.run.assert_not_called()
        assert not out.exists()

    def test_whitespace_only_input_is_not_empty(self, orchestrator, make_request, tmp_path):
        # a space is a real vocabulary token
        run = orchestrator.run(make_request(reference_text=" ", generation_text=" "), tmp_path / "out.wav")
        assert run.token_count == 2

    def test_unknown_token_falls_back_to_id_zero(self, orchestrator, make_request, preprocess_session, metrics, tmp_path):
        run = orchestrator.run(make_request(generation_text="hello?"), tmp_path / "out.wav")

        assert run.state is SynthesisState.DONE
        _, feeds = preprocess_session.run.call_args.args
        assert feeds["text_ids"][0, -1] == 0
        metrics.inc.assert_any_call(UNKNOWN_TOKENS, 1)

    def test_stage_failure_is_tagged(self, orchestrator, make_request, denoise_session, metrics, tmp_path):
        denoise_session.run.side_effect = RuntimeError("invalid dimensions")
        out = tmp_path / "out.wav"

        with pytest.raises(StageInvocationError) as excinfo:
            orchestrator.run(make_request(), out)

        assert excinfo.value.stage == "denoise"
        assert excinfo.value.state == "DENOISE"
        assert not out.exists()
        metrics.inc.assert_any_call(SYNTHESIS_TOTAL, labels={"status": "error"})

    def test_missing_reference_audio(self, orchestrator, make_request, tmp_path):
        with pytest.raises(DecodeError) as excinfo:
            orchestrator.run(make_request(reference_audio=tmp_path / "missing.wav"), tmp_path / "out.wav")
        assert excinfo.value.state == "PREPROCESS"

    def test_empty_decoded_signal(self, orchestrator, make_request, decode_session, tmp_path):
        decode_session.run.return_value = [np.zeros((1, 0), dtype=np.float32)]
        out = tmp_path / "out.wav"
        with pytest.raises(EncodeError) as excinfo:
            orchestrator.run(make_request(), out)
        assert excinfo.value.state == "ENCODE"
        assert not out.exists()

    def test_unexpected_error_is_wrapped(self, orchestrator, make_request, context, tmp_path, monkeypatch):
        def broken(*args, **kwargs):
            raise KeyError("boom")

        monkeypatch.setattr("voiceclone.tts.pipeline.tokenize", broken)
        with pytest.raises(SynthesisError) as excinfo:
            orchestrator.run(make_request(), tmp_path / "out.wav")
        assert excinfo.value.state == "TOKENIZE"
        assert isinstance(excinfo.value.__cause__, KeyError)


class TestNormalization:
    def test_normalize_option_applies_before_tokenizing(self, context, make_request, preprocess_session, tmp_path):
        orchestrator = SynthesisOrchestrator(
            SynthesisContext(
                config=context.config.replace(normalize=True),
                vocab=context.vocab,
                stages=context.stages,
                metrics=context.metrics,
            )
        )
        run = orchestrator.run(make_request(reference_text="HELLO!", generation_text="  World. "), tmp_path / "out.wav")

        _, feeds = preprocess_session.run.call_args.args
        assert feeds["text_ids"].tolist() == [[_id(ch) for ch in "helloworld"]]
        # 188 + floor(188 * 5 / 5)
        assert run.max_duration == 376


@pytest.mark.asyncio
async def test_synthesize_async(orchestrator, make_request, tmp_path):
    out = await orchestrator.synthesize_async(make_request(), tmp_path / "async.wav")
    assert out.exists()


@pytest.mark.asyncio
async def test_concurrent_requests_share_context(orchestrator, make_request, tmp_path):
    paths = await asyncio.gather(
        orchestrator.synthesize_async(make_request(), tmp_path / "a.wav"),
        orchestrator.synthesize_async(make_request(generation_text="world"), tmp_path / "b.wav"),
    )
    assert all(p.exists() for p in paths)

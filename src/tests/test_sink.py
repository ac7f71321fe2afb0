import discord
import pytest

from core.sink import PipelineAudioSource, clamp_volume, percent_to_gain
from utils.exceptions import StreamError

FRAME_SIZE = discord.opus.Decoder.FRAME_SIZE


class FakeDecoder:
    """Each packet decodes to half a frame filled with its first byte."""

    def decode(self, packet):
        return bytes([packet[0]]) * (FRAME_SIZE // 2)


class PacketPipeline:
    def __init__(self, packets=(), exit_code=0, error=None):
        self.packets = list(packets)
        self.exit_code = exit_code
        self.error = error
        self.destroyed = False

    def read(self):
        if self.error:
            raise self.error
        return self.packets.pop(0) if self.packets else b''

    def wait(self, timeout=None):
        return self.exit_code

    def destroy(self):
        self.destroyed = True


def test_volume_curve():
    assert percent_to_gain(100) == pytest.approx(1.0)
    assert percent_to_gain(0) == 0
    assert percent_to_gain(200) == pytest.approx(2 ** 1.660964)
    assert percent_to_gain(50) < 0.5
    assert percent_to_gain(5000) == percent_to_gain(1000)
    assert clamp_volume(-1) == 0


def test_source_decodes_frames_and_skips_headers():
    pipeline = PacketPipeline([b'OpusHead' + b'\x00' * 11, b'OpusTags' + b'\x00' * 8, b'\x01\xaa', b'\x02\xbb'])
    source = PipelineAudioSource(pipeline, decoder=FakeDecoder())

    frame = source.read()
    assert len(frame) == FRAME_SIZE
    assert frame[:FRAME_SIZE // 2] == b'\x01' * (FRAME_SIZE // 2)
    assert frame[FRAME_SIZE // 2:] == b'\x02' * (FRAME_SIZE // 2)
    assert source.read() == b''
    assert source.is_opus() is False


def test_clean_end_of_stream():
    source = PipelineAudioSource(PacketPipeline(), decoder=FakeDecoder())
    assert source.read() == b''


def test_transcoder_failure_is_a_stream_error():
    source = PipelineAudioSource(PacketPipeline(exit_code=1), decoder=FakeDecoder())
    with pytest.raises(StreamError):
        source.read()


def test_garbage_output_is_a_stream_error():
    pipeline = PacketPipeline(error=discord.oggparse.OggError('invalid header magic'))
    source = PipelineAudioSource(pipeline, decoder=FakeDecoder())
    with pytest.raises(StreamError):
        source.read()


def test_destroyed_pipeline_ends_quietly():
    pipeline = PacketPipeline(exit_code=-9, error=ValueError('read of closed file'))
    source = PipelineAudioSource(pipeline, decoder=FakeDecoder())
    source.cleanup()

    assert pipeline.destroyed is True
    assert source.read() == b''

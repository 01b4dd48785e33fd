import unittest

from hlscdn.ladder import QUALITY_LADDER, filter_qualities
from hlscdn.manifest import (
    AudioTrack,
    build_master_manifest,
    build_variant_manifest,
    count_segments,
)


class TestMasterManifest(unittest.TestCase):

    def testHeaderAndEdge(self):
        text = build_master_manifest(QUALITY_LADDER[:2], "us-west")
        lines = text.splitlines()
        self.assertEqual(lines[0], "#EXTM3U")
        self.assertEqual(lines[1], "#EXT-X-VERSION:6")
        self.assertEqual(lines[2], '#EXT-X-SESSION-DATA:DATA-ID="edge.location",VALUE="us-west"')

    def testAudioTracks(self):
        text = build_master_manifest(QUALITY_LADDER[:1], "us-east")
        self.assertIn(
            '#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="audio",NAME="English",DEFAULT=YES,'
            'AUTOSELECT=YES,LANGUAGE="en",URI="audio/en/index.m3u8"',
            text,
        )
        self.assertIn('NAME="Spanish",DEFAULT=NO,AUTOSELECT=YES,LANGUAGE="es",URI="audio/es/index.m3u8"', text)

    def testConfiguredAudioTracks(self):
        tracks = [AudioTrack("French", "fr", default=True)]
        text = build_master_manifest(QUALITY_LADDER[:1], "us-east", tracks)
        self.assertIn('NAME="French"', text)
        self.assertNotIn("English", text)

    def testNoAudioTracksDropsAudioAttribute(self):
        text = build_master_manifest(QUALITY_LADDER[:1], "us-east", [])
        self.assertNotIn("EXT-X-MEDIA", text)
        self.assertNotIn('AUDIO="audio"', text)

    def testOneVariantPerQuality(self):
        qualities = filter_qualities("mobile", 3_000_000)
        text = build_master_manifest(qualities, "us-east")
        lines = text.splitlines()
        inf = [i for i, ln in enumerate(lines) if ln.startswith("#EXT-X-STREAM-INF:")]
        self.assertEqual(len(inf), len(qualities))
        for i, q in zip(inf, qualities):
            self.assertEqual(
                lines[i],
                f"#EXT-X-STREAM-INF:BANDWIDTH={q.bitrate_bps},RESOLUTION={q.resolution},"
                f'FRAME-RATE={q.fps},CODECS="{q.codec},mp4a.40.2",AUDIO="audio"',
            )
            self.assertEqual(lines[i + 1], f"video/{q.id}/index.m3u8")

    def test4kRung(self):
        text = build_master_manifest(QUALITY_LADDER[7:], "us-east")
        self.assertIn('RESOLUTION=3840x2160,FRAME-RATE=60,CODECS="hev1.1.6.L150.90,mp4a.40.2"', text)


class TestVariantManifest(unittest.TestCase):

    def testVod(self):
        text = build_variant_manifest("movie", 3, is_live=False)
        lines = text.splitlines()
        self.assertEqual(count_segments(text), 100)
        self.assertEqual(lines[-1], "#EXT-X-ENDLIST")
        self.assertIn("#EXT-X-TARGETDURATION:6", lines)
        self.assertIn("#EXT-X-MEDIA-SEQUENCE:0", lines)
        self.assertIn("#EXT-X-PLAYLIST-TYPE:VOD", lines)
        self.assertIn("/segment/movie/3/0.ts", lines)
        self.assertIn("/segment/movie/3/99.ts", lines)
        self.assertNotIn("/segment/movie/3/100.ts", lines)

    def testLive(self):
        text = build_variant_manifest("channel", 1, is_live=True)
        self.assertEqual(count_segments(text), 10)
        self.assertNotIn("#EXT-X-ENDLIST", text)
        self.assertNotIn("#EXT-X-PLAYLIST-TYPE", text)
        self.assertEqual(text.splitlines()[-1], "/segment/channel/1/9.ts")

    def testExtinfDuration(self):
        text = build_variant_manifest("movie", 0, is_live=False)
        extinf = {ln for ln in text.splitlines() if ln.startswith("#EXTINF:")}
        self.assertEqual(extinf, {"#EXTINF:6.000,"})

    def testCustomDuration(self):
        text = build_variant_manifest("movie", 0, is_live=True, segment_duration_s=4)
        self.assertIn("#EXT-X-TARGETDURATION:4", text)
        self.assertIn("#EXTINF:4.000,", text)


if __name__ == "__main__":
    unittest.main()

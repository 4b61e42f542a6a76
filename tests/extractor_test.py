import unittest

from pagewatch.errors import FetchFailure
from pagewatch.rendering.models import FetchedPage
from pagewatch.snapshot.extractor import MAX_PRICES, SnapshotExtractor, extract_prices

PAGE = """
<html>
  <head><title>  Shop   Home </title></head>
  <body>
    <div class="ad">{ad}</div>
    <h1>Welcome</h1>
    <h2>Deals</h2>
    {paragraphs}
    <a href="/about">About</a>
  </body>
</html>
"""


def page(ad="Buy now", paragraphs=None):
    paragraphs = paragraphs if paragraphs is not None else [f"Paragraph {i}" for i in range(12)]
    return PAGE.format(ad=ad, paragraphs="".join(f"<p>{p}</p>" for p in paragraphs))


class TestSnapshotExtractor(unittest.TestCase):
    def setUp(self):
        self.extractor = SnapshotExtractor()

    def test_projection_is_normalized_and_bounded(self):
        snapshot = self.extractor.extract(page(), "https://example.com/")

        self.assertEqual(snapshot.title, "Shop Home")
        self.assertEqual(snapshot.headings, ["Welcome", "Deals"])
        self.assertEqual(len(snapshot.paragraphs), 10)
        self.assertEqual(snapshot.links, ["/about"])

    def test_hash_ignores_markup_outside_projection(self):
        """Scenario: rotating ad copy and an 11th paragraph must not look like a content change."""
        base = [f"Paragraph {i}" for i in range(12)]
        edited = base[:10] + ["Totally different eleventh"] + base[11:]

        first = self.extractor.extract(page(ad="Buy now", paragraphs=base), "https://example.com/")
        second = self.extractor.extract(page(ad="Sale ends soon", paragraphs=edited), "https://example.com/")

        self.assertEqual(first.content_hash, second.content_hash)

    def test_hash_tracks_projection_changes(self):
        base = [f"Paragraph {i}" for i in range(12)]
        edited = ["Changed"] + base[1:]

        first = self.extractor.extract(page(paragraphs=base), "https://example.com/")
        second = self.extractor.extract(page(paragraphs=edited), "https://example.com/")

        self.assertNotEqual(first.content_hash, second.content_hash)

    def test_extract_prices_distinct_in_order(self):
        html = "<p>$10.00</p><p>$1,299</p><p>$10.00</p><span>$5</span>"
        self.assertEqual(extract_prices(html), ["$10.00", "$1,299", "$5"])

    def test_extract_prices_capped(self):
        html = "".join(f"<p>${i}.00</p>" for i in range(MAX_PRICES + 5))
        self.assertEqual(len(extract_prices(html)), MAX_PRICES)

    def test_errored_page_raises_fetch_failure(self):
        fetched = FetchedPage(url="https://example.com/", final_url="https://example.com/", html="",
                              error="connection reset")
        with self.assertRaises(FetchFailure):
            self.extractor.from_page(fetched)


if __name__ == "__main__":
    unittest.main()

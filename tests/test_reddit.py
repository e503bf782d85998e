"""Tests for Reddit record conversion, comment nesting and scraping."""

import unittest
from unittest.mock import AsyncMock, patch

from fakes import FakePage
from session_scraper.errors import InvalidInputError, PrivateAccountError, ProfileNotFoundError
from session_scraper.scrapers import reddit
from session_scraper.scrapers.reddit import RedditComment


def raw_post(post_id, **extra):
    raw = {
        "permalink": f"/r/python/comments/{post_id}/some_title/",
        "thing_id": f"t3_{post_id}",
        "title": "Some   title",
        "author": "alice",
        "subreddit": "r/python",
        "score": "1.2k",
        "comments": "45",
        "created_at": "2024-05-01T10:00:00.000000+0000",
        "post_type": "text",
        "nsfw": False,
        "pinned": False,
        "body": None,
    }
    raw.update(extra)
    return raw


def comment(cid, depth, author="bob"):
    return RedditComment(id=cid, author=author, content=f"comment {cid}", depth=depth)


class TestPostFromRaw(unittest.TestCase):
    def test_fields(self):
        post = reddit.post_from_raw(raw_post("abc123"))
        self.assertEqual(post.id, "abc123")
        self.assertEqual(post.url, "https://www.reddit.com/r/python/comments/abc123/some_title/")
        self.assertEqual(post.title, "Some title")
        self.assertEqual(post.subreddit, "python")
        self.assertEqual(post.score, 1200)
        self.assertEqual(post.comments_count, 45)
        self.assertEqual(post.content_type, "text")

    def test_negative_score(self):
        self.assertEqual(reddit.post_from_raw(raw_post("x1", score="-12")).score, -12)

    def test_content_type_fallbacks(self):
        self.assertEqual(reddit.post_from_raw(raw_post("a", post_type="gallery")).content_type, "image")
        self.assertEqual(reddit.post_from_raw(raw_post("b", post_type="", has_video=True)).content_type, "video")
        self.assertEqual(reddit.post_from_raw(raw_post("c", post_type="", has_outbound=True)).content_type, "link")

    def test_author_from_profile_href(self):
        post = reddit.post_from_raw(raw_post("d", author="/user/carol/"))
        self.assertEqual(post.author, "carol")
        self.assertEqual(reddit.post_from_raw(raw_post("e", author="")).author, "[deleted]")

    def test_without_id(self):
        self.assertIsNone(reddit.post_from_raw(raw_post("z", permalink="", thing_id="")))


class TestNestComments(unittest.TestCase):
    def test_tree_from_depths(self):
        flat = [comment("a", 0), comment("b", 1), comment("c", 2), comment("d", 1), comment("e", 0)]
        roots = reddit.nest_comments(flat)
        self.assertEqual([c.id for c in roots], ["a", "e"])
        self.assertEqual([c.id for c in roots[0].replies], ["b", "d"])
        self.assertEqual([c.id for c in roots[0].replies[0].replies], ["c"])
        self.assertEqual(roots[1].replies, [])

    def test_orphan_depth_attaches_to_last_shallower(self):
        roots = reddit.nest_comments([comment("a", 0), comment("b", 3)])
        self.assertEqual([c.id for c in roots[0].replies], ["b"])

    def test_starting_deep(self):
        roots = reddit.nest_comments([comment("a", 2), comment("b", 2)])
        self.assertEqual([c.id for c in roots], ["a", "b"])


class TestScrapeOperations(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        patcher = patch("session_scraper.scrapers.base.human_delay", new=AsyncMock())
        patcher.start()
        self.addCleanup(patcher.stop)

    async def test_subreddit_listing(self):
        page = FakePage(
            scripts={reddit._POSTS_JS: [raw_post("p1"), raw_post("p2"), raw_post("p1"), raw_post("p3")]},
            present=(reddit.POST_SELECTOR,),
        )
        listing = await reddit.scrape_reddit_subreddit(page, "r/python", count=10, sort="new")
        self.assertEqual(page.goto_calls, ["https://www.reddit.com/r/python/new/"])
        self.assertEqual([p.id for p in listing.posts], ["p1", "p2", "p3"])
        self.assertFalse(listing.has_more)

    async def test_subreddit_validation(self):
        with self.assertRaises(InvalidInputError):
            await reddit.scrape_reddit_subreddit(FakePage(), "python", sort="controversial")
        with self.assertRaises(InvalidInputError):
            await reddit.scrape_reddit_subreddit(FakePage(), "no spaces allowed")

    async def test_private_subreddit(self):
        page = FakePage(body_text="r/secret\nThis community is private")
        with self.assertRaises(PrivateAccountError):
            await reddit.scrape_reddit_subreddit(page, "secret")

    async def test_unknown_user(self):
        page = FakePage(body_text="Sorry, nobody on Reddit goes by that name.")
        with self.assertRaises(ProfileNotFoundError):
            await reddit.scrape_reddit_user(page, "u/ghost_account")

    async def test_user(self):
        page = FakePage(
            scripts={reddit._USER_JS: {"karma": "", "post_karma": "1,200", "comment_karma": "300", "about": "hi"}},
            present=(reddit.RedditUserAdapter.loaded_selector,),
        )
        user = await reddit.scrape_reddit_user(page, "alice")
        self.assertEqual(user.username, "alice")
        self.assertEqual(user.karma, 1500)
        self.assertEqual(user.about, "hi")

    async def test_post_with_nested_comments(self):
        comments = [
            {"thing_id": "t1_c1", "depth": "0", "author": "bob", "content": "top", "score": "10"},
            {"thing_id": "t1_c2", "depth": "1", "author": "alice", "content": "reply", "score": "-2"},
            {"thing_id": "t1_c3", "depth": "0", "author": "carol", "content": "another", "score": "1"},
        ]
        page = FakePage(
            scripts={reddit._POSTS_JS: [raw_post("abc", comments="2")], reddit._COMMENTS_JS: comments},
            present=(reddit.POST_SELECTOR,),
        )
        result = await reddit.scrape_reddit_post(page, "https://www.reddit.com/r/python/comments/abc/title/")
        self.assertEqual(result.post.id, "abc")
        self.assertEqual(result.total_comments, 3)
        self.assertEqual(result.post.comments_count, 3)
        self.assertEqual([c.id for c in result.comments], ["c1", "c3"])
        self.assertEqual(result.comments[0].replies[0].score, -2)

    async def test_post_comment_limit(self):
        comments = [{"thing_id": f"t1_c{i}", "depth": "0", "author": "x", "content": str(i)} for i in range(10)]
        page = FakePage(
            scripts={reddit._POSTS_JS: [raw_post("abc")], reddit._COMMENTS_JS: comments},
            present=(reddit.POST_SELECTOR,),
        )
        result = await reddit.scrape_reddit_post(page, "https://old.reddit.com/r/python/comments/abc/", max_comments=4)
        self.assertEqual(result.total_comments, 4)

    async def test_post_bad_url(self):
        with self.assertRaises(InvalidInputError):
            await reddit.scrape_reddit_post(FakePage(), "https://www.reddit.com/r/python/")


if __name__ == "__main__":
    unittest.main()

"""Tests for tweet thread indicators and type classification."""

import unittest

from session_scraper.scrapers.twitter import (
    TweetMarkers,
    TweetType,
    detect_thread_indicators,
    detect_tweet_type,
)


def reply_to(handle):
    return TweetMarkers(reply_context=f"Replying to @{handle}")


REPOST = TweetMarkers(social_context="User reposted")
SHOW_THREAD = TweetMarkers(has_show_thread_link=True)


class TestThreadTextPatterns(unittest.TestCase):
    def assertThread(self, text):
        self.assertTrue(detect_thread_indicators(text, TweetMarkers()), text)

    def assertNotThread(self, text):
        self.assertFalse(detect_thread_indicators(text, TweetMarkers()), text)

    def test_numbered_with_slash(self):
        self.assertThread("1/5 This is the first tweet")
        self.assertThread("2/10 Continuing the thread")
        self.assertThread("15/20 Still going")

    def test_numbered_with_dot(self):
        self.assertThread("1.5 This is the first tweet")
        self.assertThread("2.3 Continuing")

    def test_standalone_numbered(self):
        self.assertThread("1/ This is the start")
        self.assertThread("2/ Next tweet")

    def test_parenthesized(self):
        self.assertThread("(1/5) First tweet")
        self.assertThread("(2.3) Second tweet")

    def test_thread_keyword_any_case(self):
        self.assertThread("Thread: Important announcement")
        self.assertThread("THREAD: Breaking news")
        self.assertThread("thread: lowercase works too")

    def test_thread_emoji_anywhere(self):
        self.assertThread("\U0001F9F5 A thread about something")
        self.assertThread("Important topic \U0001F9F5")

    def test_plain_text(self):
        self.assertNotThread("Regular tweet without thread indicators")
        self.assertNotThread("Random numbers 123 456")
        self.assertNotThread("Just a normal tweet")
        self.assertNotThread("")
        self.assertNotThread(None)

    def test_leading_whitespace_ignored(self):
        self.assertThread("  1/5 Tweet with leading spaces")
        self.assertThread("\n1/5 Tweet with newline")


class TestThreadMarkup(unittest.TestCase):
    def test_show_this_thread_link(self):
        self.assertTrue(detect_thread_indicators("Regular text", SHOW_THREAD))

    def test_large_card(self):
        self.assertTrue(detect_thread_indicators("Regular text", TweetMarkers(has_large_card=True)))

    def test_show_more(self):
        self.assertTrue(detect_thread_indicators("Regular text", TweetMarkers(has_show_more=True)))

    def test_no_markup(self):
        self.assertFalse(detect_thread_indicators("Regular text", TweetMarkers()))
        self.assertFalse(detect_thread_indicators("Regular text"))

    def test_from_raw(self):
        markers = TweetMarkers.from_raw({"show_thread": 1, "reply_context": "Replying to @bob"})
        self.assertTrue(markers.has_show_thread_link)
        self.assertEqual(markers.replying_to, "bob")

    def test_body_starting_with_replying_to_is_not_reply_markup(self):
        markers = TweetMarkers.from_raw(
            {"text": "Replying to @bob was a mistake", "reply_context": "Replying to @bob was a mistake"}
        )
        self.assertFalse(markers.is_reply)
        self.assertIsNone(markers.replying_to)


class TestDetectTweetType(unittest.TestCase):
    def test_repost(self):
        self.assertEqual(detect_tweet_type(REPOST, "", ""), TweetType.RETWEET)
        self.assertEqual(
            detect_tweet_type(TweetMarkers(social_context="Alice Retweeted"), "", ""),
            TweetType.RETWEET,
        )

    def test_repost_wins_over_everything(self):
        markers = TweetMarkers(
            social_context="You reposted",
            reply_context="Replying to @me",
            has_show_thread_link=True,
        )
        self.assertEqual(detect_tweet_type(markers, "1/5 Thread", "me"), TweetType.RETWEET)

    def test_reply_to_someone_else(self):
        self.assertEqual(detect_tweet_type(reply_to("someoneelse"), "", "myusername"), TweetType.REPLY)
        self.assertEqual(
            detect_tweet_type(reply_to("differentuser"), "1/5 Thread text", "myusername"),
            TweetType.REPLY,
        )

    def test_self_reply_is_thread(self):
        self.assertEqual(detect_tweet_type(reply_to("myusername"), "", "myusername"), TweetType.THREAD)
        self.assertEqual(detect_tweet_type(reply_to("MyUserName"), "", "@myusername"), TweetType.THREAD)
        self.assertEqual(detect_tweet_type(reply_to("user_name_123"), "", "user_name_123"), TweetType.THREAD)

    def test_original_with_thread_text(self):
        self.assertEqual(detect_tweet_type(SHOW_THREAD, "1/10 Starting a thread", ""), TweetType.THREAD)
        self.assertEqual(detect_tweet_type(TweetMarkers(), "\U0001F9F5 Thread about AI", ""), TweetType.THREAD)
        self.assertEqual(detect_tweet_type(None, "Thread: Important updates", ""), TweetType.THREAD)

    def test_original(self):
        self.assertEqual(detect_tweet_type(TweetMarkers(), "Just a regular tweet", ""), TweetType.ORIGINAL)
        self.assertEqual(detect_tweet_type(TweetMarkers(), "", ""), TweetType.ORIGINAL)
        self.assertEqual(detect_tweet_type(None, None, None), TweetType.ORIGINAL)

    def test_reply_without_handle(self):
        markers = TweetMarkers(reply_context="Replying to")
        self.assertEqual(detect_tweet_type(markers, "", "myusername"), TweetType.REPLY)

    def test_reply_with_unknown_viewer(self):
        self.assertEqual(detect_tweet_type(reply_to("someone"), "", ""), TweetType.REPLY)

    def test_deterministic(self):
        markers = reply_to("alice")
        results = {detect_tweet_type(markers, "2/3 Continuing...", "alice") for _ in range(10)}
        self.assertEqual(results, {TweetType.THREAD})

    def test_thread_scenario(self):
        self.assertEqual(detect_tweet_type(TweetMarkers(), "1/3 Starting a thread about AI", "alice"), TweetType.THREAD)
        self.assertEqual(detect_tweet_type(reply_to("alice"), "2/3 Continuing...", "alice"), TweetType.THREAD)
        self.assertEqual(detect_tweet_type(reply_to("alice"), "3/3 Final thought", "alice"), TweetType.THREAD)
        self.assertEqual(detect_tweet_type(reply_to("alice"), "Great thread!", "bob"), TweetType.REPLY)


if __name__ == "__main__":
    unittest.main()

from fastapi import Request

from lps_driver.sandbox.update_feed import UpdateFeed

def get_feed(request: Request) -> UpdateFeed:
    return request.app.state.feed

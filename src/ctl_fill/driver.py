from selenium import webdriver
from selenium.webdriver.chrome.service import Service
from webdriver_manager.chrome import ChromeDriverManager
from selenium.webdriver.chrome.options import Options
from .. import config

def create_driver():
    options = Options()
    if config.HEADLESS:
        options.add_argument("--headless=new")
    options.add_argument("--start-maximized")
    # keep the page's own timers running while the window is in the background
    options.add_argument("--disable-background-timer-throttling")
    driver = webdriver.Chrome(service=Service(ChromeDriverManager().install()),
                              options=options)
    # element lookups here are polled explicitly; an implicit wait would stall every miss
    driver.implicitly_wait(config.IMPLICIT_WAIT)
    return driver

# api.py
import imaplib
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

import config
from contact_extractor import ContactExtractionPipeline, ExtractionOptions, FetchCriteria
from db import SQLKnownContactsSource, save_contacts
from imap_scraper import IMAPAuthenticationError, IMAPMessageSource

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# -------------------------------
# Pydantic model for API input
# -------------------------------
class ContactExtractionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    imap_host: str = Field(..., description="IMAP server hostname, e.g. imap.gmail.com or outlook.office365.com")
    imap_port: int = Field(default=993, description="IMAP server port, typically 993 for SSL")
    mailbox: str = Field(default="inbox")

    search_query: Optional[str] = Field(default=None, alias="searchQuery")
    start_date: Optional[str] = Field(default=None, alias="startDate", description="ISO date or relative: 30d, 2w, 6m, 1y")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    max_emails: int = Field(default=config.MAX_EMAILS, alias="maxEmails", ge=1)

    include_body: bool = Field(default=True, alias="includeBody")
    exclude_newsletters: bool = Field(default=True, alias="excludeNewsletters")
    newsletter_threshold: int = Field(default=config.NEWSLETTER_THRESHOLD, alias="newsletterThreshold", ge=0, le=100)
    save_newsletter_report: bool = Field(default=False, alias="saveNewsletterReport")
    output_path: Optional[str] = Field(default=None, alias="outputPath")
    write_csv: bool = Field(default=True, alias="writeCsv")
    save_to_database: bool = Field(default=False, alias="saveToDatabase")


# -------------------------------
# FastAPI app
# -------------------------------
app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def known_contacts_source():
    return SQLKnownContactsSource() if config.DATABASE_URL else None


@app.post("/extract-contacts")
def extract_contacts(request: ContactExtractionRequest):
    source = IMAPMessageSource(
        request.email,
        request.password,
        request.imap_host,
        request.imap_port,
        mailbox=request.mailbox,
    )
    try:
        source.connect()
    except IMAPAuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except (OSError, imaplib.IMAP4.error, RuntimeError) as e:
        raise HTTPException(status_code=502, detail=f"IMAP connection failed: {e}")

    criteria = FetchCriteria(
        search_query=request.search_query,
        start_date=request.start_date,
        end_date=request.end_date,
        max_emails=request.max_emails,
        page_size=min(request.max_emails, config.PAGE_SIZE),
    )
    options = ExtractionOptions(
        include_body=request.include_body,
        exclude_newsletters=request.exclude_newsletters,
        newsletter_threshold=request.newsletter_threshold,
        save_newsletter_report=request.save_newsletter_report,
        write_csv=request.write_csv,
        output_path=request.output_path,
    )

    try:
        with source:
            result = ContactExtractionPipeline(source, known_contacts_source()).run(criteria, options)
    except OSError as e:
        logger.error("Writing extraction output failed", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Could not write output: {e}")

    if result.fetch_error and result.stats.total_fetched == 0:
        raise HTTPException(status_code=502, detail=f"Fetching emails failed: {result.fetch_error}")

    if request.save_to_database and config.DATABASE_URL:
        save_contacts(result.contacts)

    response = result.to_dict()
    response["message"] = result.summary()
    return response


@app.get("/ping")
async def ping():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

# uvicorn api:app --reload

"""Fallback listings shown when the listing source cannot be reached."""

from datetime import datetime, timezone
from typing import List, Protocol

from ...models.listing import Coordinate, Listing, ListingStatus, WorkType


class FallbackProvider(Protocol):
    def fallback_listings(self) -> List[Listing]:
        """Listings to show after a failed fetch; must be non-empty."""
        ...

    def demo_listings(self) -> List[Listing]:
        """Listings to show when the default query returns nothing."""
        ...


def _at(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


class DemoFallbackProvider:
    """Fixed, deterministic demo data for degraded and empty states."""

    def fallback_listings(self) -> List[Listing]:
        return [
            Listing(
                id="demo-fallback",
                title="Demo: Website Development Project",
                description=(
                    "This is demo data shown because the gig listings could not be "
                    "loaded. Check your connection to see real gigs."
                ),
                category="Technology",
                location="South Africa",
                budget=10000,
                duration="2 weeks",
                skills_required=["Web Development"],
                employer_id="demo-employer",
                employer_name="Demo Company",
                status=ListingStatus.OPEN,
                work_type=WorkType.REMOTE,
                created_at=_at(2024, 9, 1),
                updated_at=_at(2024, 9, 1),
            )
        ]

    def demo_listings(self) -> List[Listing]:
        cape_town = Coordinate(latitude=-33.9249, longitude=18.4241)
        johannesburg = Coordinate(latitude=-26.2041, longitude=28.0473)
        return [
            Listing(
                id="demo-1",
                title="Website Development for Small Business",
                description=(
                    "Looking for a skilled web developer to create a modern, responsive "
                    "website for our local bakery. Need online ordering system and "
                    "payment integration."
                ),
                category="Technology",
                location="Cape Town",
                coordinates=cape_town,
                budget=15000,
                duration="2-3 weeks",
                skills_required=["React", "Node.js", "Payment Integration"],
                employer_id="employer-1",
                employer_name="Cape Town Bakery",
                work_type=WorkType.REMOTE,
                created_at=_at(2024, 9, 15),
                updated_at=_at(2024, 9, 15),
            ),
            Listing(
                id="demo-2",
                title="Logo Design for Tech Startup",
                description=(
                    "Need a creative logo designer to create a modern, professional logo "
                    "for our AI startup. Should reflect innovation and trustworthiness."
                ),
                category="Design",
                location="Johannesburg",
                coordinates=johannesburg,
                budget=3500,
                duration="1 week",
                skills_required=["Graphic Design", "Logo Design", "Adobe Illustrator"],
                employer_id="employer-2",
                employer_name="AI Innovations",
                work_type=WorkType.REMOTE,
                created_at=_at(2024, 9, 18),
                updated_at=_at(2024, 9, 18),
            ),
            Listing(
                id="demo-3",
                title="Content Writing for Travel Blog",
                description=(
                    "Seeking experienced travel writer to create engaging blog posts "
                    "about South African destinations. 10 articles needed."
                ),
                category="Writing",
                location="Durban",
                coordinates=Coordinate(latitude=-29.8587, longitude=31.0218),
                budget=8000,
                duration="3 weeks",
                skills_required=["Content Writing", "SEO", "Travel Experience"],
                employer_id="employer-3",
                employer_name="SA Travel Guide",
                work_type=WorkType.REMOTE,
                created_at=_at(2024, 9, 20),
                updated_at=_at(2024, 9, 20),
            ),
            Listing(
                id="demo-4",
                title="Social Media Marketing Campaign",
                description=(
                    "Small restaurant needs help with social media presence. Create "
                    "content calendar, design posts, and manage Instagram/Facebook accounts."
                ),
                category="Marketing",
                location="Pretoria",
                coordinates=Coordinate(latitude=-25.7479, longitude=28.2293),
                budget=5000,
                duration="1 month",
                skills_required=["Social Media Marketing", "Content Creation", "Canva"],
                employer_id="employer-4",
                employer_name="Mama's Kitchen",
                work_type=WorkType.HYBRID,
                created_at=_at(2024, 9, 19),
                updated_at=_at(2024, 9, 19),
            ),
            Listing(
                id="demo-5",
                title="Weekly House Cleaning",
                description=(
                    "Need reliable person for weekly house cleaning in Sandton. 3-bedroom "
                    "house, must bring own cleaning supplies."
                ),
                category="Cleaning",
                location="Johannesburg",
                coordinates=johannesburg,
                budget=600,
                duration="1 day",
                skills_required=["House Cleaning"],
                employer_id="employer-5",
                employer_name="Johnson Family",
                work_type=WorkType.PHYSICAL,
                created_at=_at(2024, 9, 21),
                updated_at=_at(2024, 9, 21),
            ),
            Listing(
                id="demo-6",
                title="Mobile App UI/UX Design",
                description=(
                    "Looking for UI/UX designer to redesign our fitness tracking mobile "
                    "app. Need modern, intuitive design that encourages user engagement."
                ),
                category="Design",
                location="Cape Town",
                coordinates=cape_town,
                budget=12000,
                duration="4 weeks",
                skills_required=["UI/UX Design", "Figma", "Mobile Design", "User Research"],
                employer_id="employer-6",
                employer_name="FitTrack Solutions",
                work_type=WorkType.REMOTE,
                created_at=_at(2024, 9, 21),
                updated_at=_at(2024, 9, 21),
            ),
        ]

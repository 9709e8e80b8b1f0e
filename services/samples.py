from services.models import EmailSample

# Stand-in inbox used by batch scans until real mailbox fetching exists
SAMPLE_EMAILS = [
    EmailSample(
        subject="Urgent: Verify Your Account Now",
        sender="security@bank-update.com",
        content=(
            "Your account will be suspended unless you verify immediately. "
            "Click here: http://suspicious-bank-link.com"
        ),
    ),
    EmailSample(
        subject="Weekly Newsletter",
        sender="newsletter@company.com",
        content="Here's your weekly update with the latest news and updates from our team.",
    ),
    EmailSample(
        subject="You've Won $1,000,000!",
        sender="lottery@winner.biz",
        content=(
            "Congratulations! You've won our lottery. "
            "Send us your banking details to claim your prize."
        ),
    ),
]

"""
Payments App - UPI Pay-and-Auto-Log Client

Client half of the UPI handoff: the user pays in an external UPI app and
the expense is logged from the user's own answer when they come back.

Key Features:
- UPI deep link building with strict input validation (no extra params)
- QR rendering of the deep link for desktop browsers
- Async HTTP client for the initiate/confirm expense calls
- Payment session state machine that survives unreliable return signals
- Return detection from focus and visibility signals
- Confirmation prompt state derived from the session

Architecture:
- upi.py: link builder, payment form validation, QR rendering
- transport.py: ExpenseApiClient (httpx)
- session.py: PaymentSession, storage backends, PaymentSessionController
- return_detection.py: ReturnDetector and signal source protocols
- prompt.py: ConfirmationPrompt
- exceptions.py: client exception hierarchy
"""
